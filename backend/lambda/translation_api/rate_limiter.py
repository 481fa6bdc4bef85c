"""rate_limiter.py — Fixed-window per-client, per-route request limiting.

Counters live in a module-level store that survives across invocations in a
warm Lambda container. Expired windows are swept at most every five minutes,
piggybacking on ``hit`` since a container has no background timer.

Part of translation_api.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from community_shared.http_utils import _error, _header
from community_shared.serialization import _emit_structured_observability, _epoch_ms_to_iso
from config import RATE_LIMIT_RULES, RATE_LIMIT_SWEEP_INTERVAL_MS

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_MESSAGE",
    "MemoryStore",
    "RateLimitInfo",
    "RateLimitRule",
    "check_rate_limit",
    "clear_all_rate_limits",
    "get_client_identifier",
    "get_rate_limit_stats",
    "record_outcome",
    "reset_rate_limit",
    "rule_for",
]

KEY_PREFIX = "rate_limit"
DEFAULT_MESSAGE = "Too many requests. Please wait a moment and try again."


def _now_ms() -> float:
    return time.time() * 1000.0


@dataclass
class RateLimitInfo:
    count: int
    reset_time: float
    window_start: float


@dataclass(frozen=True)
class RateLimitRule:
    window_ms: int
    max: int
    message: str = DEFAULT_MESSAGE
    skip_successful_requests: bool = False
    skip_failed_requests: bool = False


class MemoryStore:
    """In-process window counters keyed by ``rate_limit:<client>:<route>``."""

    def __init__(
        self,
        sweep_interval_ms: int = RATE_LIMIT_SWEEP_INTERVAL_MS,
        clock: Callable[[], float] = _now_ms,
    ) -> None:
        self.sweep_interval_ms = sweep_interval_ms
        self.clock = clock
        self._entries: Dict[str, RateLimitInfo] = {}
        self._last_sweep = clock()

    def hit(self, key: str, window_ms: int) -> RateLimitInfo:
        now = self.clock()
        if now - self._last_sweep >= self.sweep_interval_ms:
            self.sweep()

        existing = self._entries.get(key)
        if existing is None or now - existing.window_start >= window_ms:
            info = RateLimitInfo(count=1, reset_time=now + window_ms, window_start=now)
            self._entries[key] = info
            return info

        existing.count += 1
        return existing

    def release(self, key: str) -> None:
        info = self._entries.get(key)
        if info is not None and info.count > 0:
            info.count -= 1

    def sweep(self) -> int:
        now = self.clock()
        expired = [key for key, info in self._entries.items() if now >= info.reset_time]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now
        if expired:
            logger.info("rate limit store swept %d expired windows", len(expired))
        return len(expired)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def delete_prefix(self, prefix: str) -> int:
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def keys(self):
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


_store = MemoryStore()


def _resolve(store: Optional[MemoryStore]) -> MemoryStore:
    # an empty store is falsy because of __len__
    return store if store is not None else _store


def rule_for(route_key: str) -> RateLimitRule:
    raw = RATE_LIMIT_RULES[route_key]
    return RateLimitRule(window_ms=int(raw["window_ms"]), max=int(raw["max"]))


def get_client_identifier(event: Dict[str, Any], claims: Optional[Dict[str, Any]] = None) -> str:
    """``user:<sub>`` for authenticated callers, otherwise ``ip:<address>``."""
    user_id = str((claims or {}).get("sub") or "").strip()
    if user_id:
        return f"user:{user_id}"

    forwarded = _header(event, "x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        rc = event.get("requestContext") or {}
        ip = (rc.get("http") or {}).get("sourceIp") or (rc.get("identity") or {}).get("sourceIp") or "unknown"
    return f"ip:{ip}"


def _key(client_id: str, route: str) -> str:
    return f"{KEY_PREFIX}:{client_id}:{route}"


def _client_of(key: str) -> str:
    # IPv6 client ids and route templates both contain ":"; routes start with "/".
    return key[len(KEY_PREFIX) + 1 :].split(":/", 1)[0]


def check_rate_limit(
    event: Dict[str, Any],
    rule: RateLimitRule,
    route: str,
    claims: Optional[Dict[str, Any]] = None,
    store: Optional[MemoryStore] = None,
) -> Tuple[Dict[str, str], Optional[Dict[str, Any]]]:
    """Count this request against ``rule``.

    Returns (rate-limit headers, None) when allowed, or
    (headers, 429 response) when the window quota is exhausted.
    """
    store = _resolve(store)
    client_id = get_client_identifier(event, claims)
    info = store.hit(_key(client_id, route), rule.window_ms)

    headers = {
        "X-RateLimit-Limit": str(rule.max),
        "X-RateLimit-Remaining": str(max(0, rule.max - info.count)),
        "X-RateLimit-Reset": _epoch_ms_to_iso(info.reset_time),
        "X-RateLimit-Window": str(rule.window_ms),
    }
    if info.count <= rule.max:
        return headers, None

    retry_after = max(0, math.ceil((info.reset_time - store.clock()) / 1000.0))
    headers["Retry-After"] = str(retry_after)
    logger.warning("rate limit exceeded: %s route=%s count=%d/%d", client_id, route, info.count, rule.max)
    _emit_structured_observability(
        component="rate_limiter",
        event="exceeded",
        error_code="RATE_LIMIT_EXCEEDED",
        extra={"client_id": client_id, "route": route, "count": info.count, "limit": rule.max},
    )
    return headers, _error(
        429,
        rule.message,
        headers=headers,
        code="RATE_LIMIT_EXCEEDED",
        limit=rule.max,
        window_ms=rule.window_ms,
        reset_time=int(info.reset_time),
        retry_after=retry_after,
    )


def record_outcome(
    event: Dict[str, Any],
    rule: RateLimitRule,
    route: str,
    status_code: int,
    claims: Optional[Dict[str, Any]] = None,
    store: Optional[MemoryStore] = None,
) -> None:
    """Give back the hit when the rule does not count this kind of outcome."""
    if not (rule.skip_successful_requests or rule.skip_failed_requests):
        return
    is_success = 200 <= status_code < 300
    is_failure = status_code >= 400
    if (rule.skip_successful_requests and is_success) or (rule.skip_failed_requests and is_failure):
        _resolve(store).release(_key(get_client_identifier(event, claims), route))


def reset_rate_limit(client_id: str, path: Optional[str] = None, store: Optional[MemoryStore] = None) -> None:
    store = _resolve(store)
    if path:
        store.delete(_key(client_id, path))
    else:
        store.delete_prefix(f"{KEY_PREFIX}:{client_id}:/")


def clear_all_rate_limits(store: Optional[MemoryStore] = None) -> None:
    _resolve(store).clear()


def get_rate_limit_stats(store: Optional[MemoryStore] = None) -> Dict[str, int]:
    store = _resolve(store)
    clients = {_client_of(key) for key in store.keys()}
    return {"total_clients": len(clients), "total_entries": len(store)}
