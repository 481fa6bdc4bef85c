"""translation_api/lambda_function.py

Translation API for the multilingual community forum.

Routes (API Gateway HTTP API):
    POST    /api/translate
    POST    /api/translate/batch
    POST    /api/translate/detect
    GET     /api/translate/languages
    GET     /api/translate/health
    GET     /api/translation-cache/statistics
    GET     /api/translation-cache/entries/{sourceLanguage}/{targetLanguage}
    DELETE  /api/translation-cache/entries
    POST    /api/translation-cache/cleanup
    DELETE  /api/translation-cache/all
    GET     /api/translation-cache/config
    GET     /api/translation-cache/health
    OPTIONS /api/*

Scheduled invocation (EventBridge, source "aws.events") runs cache
maintenance: purge expired entries, then evict least-recently-accessed
entries above TRANSLATION_CACHE_MAX_ENTRIES.

Auth:
    Cognito ID token via `Authorization: Bearer` or the `community_id_token`
    cookie. Health routes are public. Clearing the whole cache also needs
    the admin token in `X-Admin-Token`.

Environment variables:
    TRANSLATION_CACHE_TABLE               default: TranslationCache
    TRANSLATION_CACHE_ENABLED             default: true
    TRANSLATION_CACHE_TTL                 default: 86400
    TRANSLATION_CACHE_MAX_ENTRIES         default: 10000
    TRANSLATION_CACHE_CLEANUP_INTERVAL    default: 3600
    TRANSLATION_CACHE_QUALITY_THRESHOLD   default: 0.7
    TRANSLATE_MAX_TEXT_LENGTH             default: 5000
    PROJECT_NAME / ENVIRONMENT            Parameter Store prefix
    ADMIN_TOKEN / ADMIN_SECRET_NAME       admin token source
    COGNITO_USER_POOL_ID / COGNITO_CLIENT_ID
"""

from __future__ import annotations

import hmac
import re
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from community_shared.auth import _authenticate
from community_shared.http_utils import (
    API_VERSION,
    CORS_HEADERS,
    _error,
    _header,
    _parse_body,
    _path_method,
    _request_id,
    _response,
)
from community_shared.serialization import _now_z
from config import ADMIN_SECRET_NAME, ADMIN_TOKEN, BATCH_MAX_CONCURRENCY, BATCH_MAX_TEXTS, logger
from cache_service import TranslationCacheService
from parameters import SecretsError, get_secret
from rate_limiter import check_rate_limit, get_rate_limit_stats, record_outcome, rule_for
from translator import TranslationError, TranslationRequest, TranslationService
from translation_utils import evaluate_confidence

# ---------------------------------------------------------------------------
# Module-level services (reused across warm invocations)
# ---------------------------------------------------------------------------

_cache_service = TranslationCacheService()
_translator = TranslationService(cache=_cache_service)

# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


def _field(body: Dict[str, Any], name: str, alias: str) -> Any:
    """Read a snake_case body field, accepting the camelCase alias older clients send."""
    value = body.get(name)
    if value is None:
        value = body.get(alias)
    return value


def _json_object(event: Dict[str, Any]) -> Dict[str, Any]:
    body = _parse_body(event)
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def _optional_str(value: Any, name: str) -> Optional[str]:
    if value in (None, ""):
        return None
    if not isinstance(value, str):
        raise ValueError(f"'{name}' must be a string")
    return value.strip() or None


def _ok(data: Any, request_id: str, started: float, status_code: int = 200) -> Dict[str, Any]:
    return _response(
        status_code,
        {
            "success": status_code < 400,
            "data": data,
            "metadata": {
                "request_id": request_id,
                "timestamp": _now_z(),
                "processing_time": int((time.time() - started) * 1000),
                "version": API_VERSION,
            },
        },
    )


# ---------------------------------------------------------------------------
# Translation handlers
# ---------------------------------------------------------------------------


def _handle_translate(event, claims, match, request_id, started):
    body = _json_object(event)
    text = body.get("text")
    if not isinstance(text, str) or not text.strip():
        return _error(400, "'text' is required", code="EMPTY_TEXT")
    target = _optional_str(_field(body, "target_language", "targetLanguage"), "target_language")
    if not target:
        return _error(400, "'target_language' is required", code="MISSING_TARGET_LANGUAGE")
    source = _optional_str(_field(body, "source_language", "sourceLanguage"), "source_language")

    result = _translator.translate_text(
        TranslationRequest(
            text=text,
            target_language=target,
            source_language=source,
            preserve_markdown=bool(_field(body, "preserve_markdown", "preserveMarkdown")),
        ),
        request_id=request_id,
    )
    return _ok(result.to_dict(), request_id, started)


def _handle_batch(event, claims, match, request_id, started):
    body = _json_object(event)
    texts = body.get("texts")
    if not isinstance(texts, list) or not texts:
        return _error(400, "'texts' must be a non-empty array", code="INVALID_INPUT")
    if len(texts) > BATCH_MAX_TEXTS:
        return _error(400, f"Batch translation accepts at most {BATCH_MAX_TEXTS} texts", code="TOO_MANY_TEXTS")
    if not all(isinstance(text, str) for text in texts):
        return _error(400, "'texts' must contain only strings", code="INVALID_INPUT")
    target = _optional_str(_field(body, "target_language", "targetLanguage"), "target_language")
    if not target:
        return _error(400, "'target_language' is required", code="INVALID_TARGET_LANGUAGE")
    source = _optional_str(_field(body, "source_language", "sourceLanguage"), "source_language")

    raw_concurrency = _field(body, "max_concurrency", "maxConcurrency")
    try:
        max_concurrency = int(raw_concurrency) if raw_concurrency is not None else 5
    except (TypeError, ValueError):
        return _error(400, "'max_concurrency' must be an integer")
    if not 1 <= max_concurrency <= BATCH_MAX_CONCURRENCY:
        return _error(400, f"'max_concurrency' must be in range 1..{BATCH_MAX_CONCURRENCY}")
    preserve_order = _field(body, "preserve_order", "preserveOrder")
    preserve_order = True if preserve_order is None else bool(preserve_order)

    outcomes = _translator.translate_batch(
        texts,
        target_language=target,
        source_language=source,
        max_concurrency=max_concurrency,
        preserve_order=preserve_order,
        request_id=request_id,
    )
    successes = [outcome["result"] for outcome in outcomes if outcome["success"]]
    errors = [outcome["error"] for outcome in outcomes if not outcome["success"]]
    logger.info(
        "batch translation [%s]: %d/%d succeeded", request_id, len(successes), len(outcomes)
    )
    return _ok(
        {
            "results": successes,
            "total_processing_time": int((time.time() - started) * 1000),
            "success_count": len(successes),
            "error_count": len(errors),
            "errors": errors,
        },
        request_id,
        started,
    )


def _handle_detect(event, claims, match, request_id, started):
    body = _json_object(event)
    text = body.get("text")
    if not isinstance(text, str) or not text.strip():
        return _error(400, "'text' is required", code="EMPTY_TEXT")
    detection = _translator.detect_language(text)
    return _ok(
        {
            "language_code": detection.language_code,
            "language_name": _translator.get_language_name(detection.language_code),
            "score": detection.score,
            "confidence_level": evaluate_confidence(detection.score),
        },
        request_id,
        started,
    )


def _handle_languages(event, claims, match, request_id, started):
    languages = [
        {"code": code, "name": _translator.get_language_name(code)}
        for code in _translator.get_supported_languages()
    ]
    return _ok({"languages": languages, "count": len(languages)}, request_id, started)


def _handle_translate_health(event, claims, match, request_id, started):
    health = _translator.health_check()
    return _ok(health, request_id, started, 200 if health["status"] == "healthy" else 503)


# ---------------------------------------------------------------------------
# Cache administration handlers
# ---------------------------------------------------------------------------


def _handle_cache_statistics(event, claims, match, request_id, started):
    stats = _cache_service.get_statistics().to_dict()
    stats["rate_limits"] = get_rate_limit_stats()
    return _ok(stats, request_id, started)


def _handle_cache_entries(event, claims, match, request_id, started):
    source, target = match.group(1), match.group(2)
    qs = event.get("queryStringParameters") or {}
    try:
        limit = int(qs.get("limit") or 100)
    except (TypeError, ValueError):
        return _error(400, "'limit' must be an integer")
    if not 1 <= limit <= 1000:
        return _error(400, "'limit' must be in range 1..1000")

    entries = _cache_service.get_by_language_pair(source, target, limit)
    return _ok(
        {
            "entries": [entry.to_dict() for entry in entries],
            "count": len(entries),
            "source_language": source,
            "target_language": target,
            "limit": limit,
        },
        request_id,
        started,
    )


def _handle_cache_delete_entry(event, claims, match, request_id, started):
    body = _json_object(event)
    original = _field(body, "original_text", "originalText")
    source = _field(body, "source_language", "sourceLanguage")
    target = _field(body, "target_language", "targetLanguage")
    if not all(isinstance(value, str) and value for value in (original, source, target)):
        return _error(
            400,
            "'original_text', 'source_language' and 'target_language' are required",
            code="MISSING_PARAMETERS",
        )

    result = _cache_service.delete(original, source, target)
    if not result.success:
        return _error(500, result.error or "Failed to delete cache entry", code="CACHE_DELETE_ERROR")
    return _ok(
        {
            "message": "Cache entry deleted",
            "original_text": original,
            "source_language": source,
            "target_language": target,
        },
        request_id,
        started,
    )


def _handle_cache_cleanup(event, claims, match, request_id, started):
    deleted = _cache_service.cleanup_expired_entries()
    return _ok({"message": "Expired cache entries removed", "deleted_count": deleted}, request_id, started)


def _admin_token() -> str:
    if ADMIN_TOKEN:
        return ADMIN_TOKEN
    try:
        secret = get_secret(ADMIN_SECRET_NAME)
    except SecretsError as exc:
        logger.warning("admin secret unavailable: %s", exc)
        return ""
    if isinstance(secret, dict):
        return str(secret.get("admin_token") or "")
    return str(secret or "")


def _handle_cache_clear_all(event, claims, match, request_id, started):
    supplied = _header(event, "x-admin-token")
    expected = _admin_token()
    if not expected or not supplied or not hmac.compare_digest(supplied, expected):
        return _error(403, "Administrator privileges are required", code="INSUFFICIENT_PERMISSIONS")

    result = _cache_service.clear_all()
    if not result.success:
        return _error(500, result.error or "Failed to clear cache", code="CACHE_CLEAR_ERROR")
    logger.warning("translation cache cleared by %s", claims.get("sub") or "unknown")
    return _ok({"message": "All cache entries deleted"}, request_id, started)


def _handle_cache_config(event, claims, match, request_id, started):
    return _ok(_cache_service.get_config(), request_id, started)


def _handle_cache_health(event, claims, match, request_id, started):
    health = _cache_service.health_check()
    status_code = 200 if health["status"] in ("healthy", "disabled") else 503
    return _ok(health, request_id, started, status_code)


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------

Handler = Callable[..., Dict[str, Any]]

# (method, path pattern, route key for rate limiting, rate rule, auth required, handler)
_ROUTES: List[Tuple[str, "re.Pattern[str]", str, str, bool, Handler]] = [
    ("POST", re.compile(r"^/api/translate/?$"), "/api/translate", "translate", True, _handle_translate),
    ("POST", re.compile(r"^/api/translate/batch/?$"), "/api/translate/batch", "translate_batch", True, _handle_batch),
    ("POST", re.compile(r"^/api/translate/detect/?$"), "/api/translate/detect", "detect", True, _handle_detect),
    ("GET", re.compile(r"^/api/translate/languages/?$"), "/api/translate/languages", "languages", True, _handle_languages),
    ("GET", re.compile(r"^/api/translate/health/?$"), "/api/translate/health", "translate_health", False, _handle_translate_health),
    ("GET", re.compile(r"^/api/translation-cache/statistics/?$"), "/api/translation-cache/statistics", "cache_admin", True, _handle_cache_statistics),
    (
        "GET",
        re.compile(r"^/api/translation-cache/entries/([A-Za-z-]{2,10})/([A-Za-z-]{2,10})/?$"),
        "/api/translation-cache/entries/:source/:target",
        "cache_admin",
        True,
        _handle_cache_entries,
    ),
    ("DELETE", re.compile(r"^/api/translation-cache/entries/?$"), "/api/translation-cache/entries", "cache_admin", True, _handle_cache_delete_entry),
    ("POST", re.compile(r"^/api/translation-cache/cleanup/?$"), "/api/translation-cache/cleanup", "cache_admin", True, _handle_cache_cleanup),
    ("DELETE", re.compile(r"^/api/translation-cache/all/?$"), "/api/translation-cache/all", "cache_admin", True, _handle_cache_clear_all),
    ("GET", re.compile(r"^/api/translation-cache/config/?$"), "/api/translation-cache/config", "cache_admin", True, _handle_cache_config),
    ("GET", re.compile(r"^/api/translation-cache/health/?$"), "/api/translation-cache/health", "cache_admin", False, _handle_cache_health),
]


def _match_route(method: str, path: str):
    path_matched = False
    for route_method, pattern, route_key, rule_key, auth_required, handler in _ROUTES:
        match = pattern.match(path)
        if not match:
            continue
        path_matched = True
        if route_method == method:
            return (route_key, rule_key, auth_required, handler, match), True
    return None, path_matched


def _handle_scheduled(event: Dict[str, Any]) -> Dict[str, Any]:
    counts = _cache_service.run_maintenance()
    logger.info("scheduled cache maintenance (%s): %s", event.get("id") or "-", counts)
    return {"status": "ok", **counts}


def _run_due_maintenance() -> None:
    if _cache_service.maintenance_due():
        _cache_service.run_maintenance()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    if event.get("source") == "aws.events":
        return _handle_scheduled(event)

    method, path = _path_method(event)
    if method == "OPTIONS":
        return {"statusCode": 204, "headers": dict(CORS_HEADERS), "body": ""}

    logger.info("route method=%s path=%s", method, path)
    route, path_matched = _match_route(method, path)
    if route is None:
        if path_matched:
            return _error(405, f"Method not allowed: {method} {path}", code="METHOD_NOT_ALLOWED")
        return _error(404, f"Unsupported route: {method} {path}")
    route_key, rule_key, auth_required, handler, match = route

    started = time.time()
    request_id = _request_id(event)

    claims: Dict[str, Any] = {}
    if auth_required:
        auth_claims, auth_error = _authenticate(event, error_fn=_error)
        if auth_error is not None:
            return auth_error
        claims = auth_claims or {}

    rule = rule_for(rule_key)
    rate_headers, limited = check_rate_limit(event, rule, route_key, claims)
    if limited is not None:
        return limited

    try:
        response = handler(event, claims, match, request_id, started)
    except ValueError as exc:
        response = _error(400, str(exc))
    except TranslationError as exc:
        response = _error(exc.status_code, str(exc), code=exc.code)
    except Exception as exc:
        logger.exception("unhandled error on %s %s [%s]", method, path, request_id)
        response = _error(500, "Internal server error. Please try again.", detail=type(exc).__name__)

    response["headers"] = {**response.get("headers", {}), **rate_headers}
    record_outcome(event, rule, route_key, response["statusCode"], claims)
    _run_due_maintenance()
    return response
