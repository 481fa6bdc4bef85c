"""Unit tests for the in-memory fixed-window rate limiter."""

from __future__ import annotations

import json
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "shared_layer", "python"))

from rate_limiter import (  # noqa: E402
    MemoryStore,
    RateLimitRule,
    check_rate_limit,
    get_client_identifier,
    get_rate_limit_stats,
    record_outcome,
    reset_rate_limit,
    rule_for,
)


class FakeClock:
    def __init__(self, now_ms: float = 1_000_000.0) -> None:
        self.now_ms = now_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(sweep_interval_ms=300_000, clock=clock)


def _event(ip="203.0.113.9", forwarded=None):
    headers = {"x-forwarded-for": forwarded} if forwarded else {}
    return {"headers": headers, "requestContext": {"http": {"sourceIp": ip}}}


def test_client_identifier_prefers_user_claims():
    assert get_client_identifier(_event(), {"sub": "u-42"}) == "user:u-42"


def test_client_identifier_uses_first_forwarded_address():
    assert get_client_identifier(_event(forwarded="198.51.100.1, 10.0.0.1")) == "ip:198.51.100.1"


def test_client_identifier_falls_back_to_source_ip_then_unknown():
    assert get_client_identifier(_event()) == "ip:203.0.113.9"
    assert get_client_identifier({"headers": {}}) == "ip:unknown"


def test_allows_up_to_max_then_rejects(store):
    rule = RateLimitRule(window_ms=60_000, max=2)

    headers, limited = check_rate_limit(_event(), rule, "/api/translate", store=store)
    assert limited is None
    assert headers["X-RateLimit-Limit"] == "2"
    assert headers["X-RateLimit-Remaining"] == "1"
    assert headers["X-RateLimit-Window"] == "60000"

    _, limited = check_rate_limit(_event(), rule, "/api/translate", store=store)
    assert limited is None

    headers, limited = check_rate_limit(_event(), rule, "/api/translate", store=store)
    assert limited["statusCode"] == 429
    assert headers["X-RateLimit-Remaining"] == "0"
    assert limited["headers"]["Retry-After"] == "60"
    body = json.loads(limited["body"])
    assert body["error_envelope"]["code"] == "RATE_LIMIT_EXCEEDED"
    assert body["limit"] == 2
    assert body["retry_after"] == 60


def test_window_resets_after_expiry(store, clock):
    rule = RateLimitRule(window_ms=1_000, max=1)
    check_rate_limit(_event(), rule, "/api/translate", store=store)
    _, limited = check_rate_limit(_event(), rule, "/api/translate", store=store)
    assert limited is not None

    clock.advance(1_000)
    _, limited = check_rate_limit(_event(), rule, "/api/translate", store=store)
    assert limited is None


def test_routes_and_clients_are_counted_separately(store):
    rule = RateLimitRule(window_ms=60_000, max=1)
    assert check_rate_limit(_event(), rule, "/api/translate", store=store)[1] is None
    assert check_rate_limit(_event(), rule, "/api/translate/detect", store=store)[1] is None
    assert check_rate_limit(_event(ip="192.0.2.1"), rule, "/api/translate", store=store)[1] is None
    assert check_rate_limit(_event(), rule, "/api/translate", store=store)[1] is not None


def test_skip_failed_requests_gives_hit_back(store):
    rule = RateLimitRule(window_ms=60_000, max=1, skip_failed_requests=True)
    check_rate_limit(_event(), rule, "/api/translate", store=store)
    record_outcome(_event(), rule, "/api/translate", 500, store=store)

    _, limited = check_rate_limit(_event(), rule, "/api/translate", store=store)
    assert limited is None


def test_outcome_counted_when_rule_does_not_skip(store):
    rule = RateLimitRule(window_ms=60_000, max=1, skip_failed_requests=True)
    check_rate_limit(_event(), rule, "/api/translate", store=store)
    record_outcome(_event(), rule, "/api/translate", 200, store=store)

    _, limited = check_rate_limit(_event(), rule, "/api/translate", store=store)
    assert limited is not None


def test_sweep_runs_lazily_on_interval(store, clock):
    rule = RateLimitRule(window_ms=1_000, max=5)
    check_rate_limit(_event(), rule, "/a", store=store)
    check_rate_limit(_event(ip="192.0.2.1"), rule, "/a", store=store)
    assert len(store) == 2

    clock.advance(300_000)
    check_rate_limit(_event(ip="192.0.2.2"), rule, "/a", store=store)
    assert len(store) == 1


def test_reset_and_stats(store):
    rule = RateLimitRule(window_ms=60_000, max=5)
    check_rate_limit(_event(), rule, "/a", store=store)
    check_rate_limit(_event(), rule, "/b", store=store)
    check_rate_limit(_event(), rule, "/a", {"sub": "u-1"}, store=store)

    assert get_rate_limit_stats(store) == {"total_clients": 2, "total_entries": 3}

    reset_rate_limit("ip:203.0.113.9", "/a", store=store)
    assert len(store) == 2
    reset_rate_limit("ip:203.0.113.9", store=store)
    assert store.keys() == ["rate_limit:user:u-1:/a"]


@pytest.mark.parametrize(
    "route_key,window_ms,maximum",
    [("translate", 60_000, 100), ("translate_batch", 300_000, 10), ("detect", 60_000, 50)],
)
def test_configured_rules(route_key, window_ms, maximum):
    rule = rule_for(route_key)
    assert (rule.window_ms, rule.max) == (window_ms, maximum)


def test_empty_caller_store_is_used_instead_of_module_store():
    mine = MemoryStore()
    rule = RateLimitRule(window_ms=60_000, max=5)

    check_rate_limit({"headers": {}}, rule, "/x", store=mine)

    assert len(mine) == 1
    assert get_rate_limit_stats(mine) == {"total_clients": 1, "total_entries": 1}


def test_stats_keep_ipv6_clients_apart(store):
    rule = RateLimitRule(window_ms=60_000, max=5)
    check_rate_limit(_event(ip="2001:db8::1"), rule, "/a", store=store)
    check_rate_limit(_event(ip="2001:db8::2"), rule, "/a", store=store)
    check_rate_limit(_event(ip="2001:db8::2"), rule, "/api/translation-cache/entries/:source/:target", store=store)

    assert get_rate_limit_stats(store) == {"total_clients": 2, "total_entries": 3}
