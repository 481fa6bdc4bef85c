"""community_shared.auth — Cognito JWT authentication for community Lambdas.

Reads the ID token from the `Authorization: Bearer <token>` header, falling
back to the `community_id_token` cookie (Cookie header / API Gateway cookies
array), validates the RS256 JWT against the Cognito User Pool JWKS endpoint,
and optionally supports service-to-service auth via an internal API key
header.

Requires environment variables:
    COGNITO_USER_POOL_ID   — e.g. ap-northeast-1_AbCdEfGhI
    COGNITO_CLIENT_ID      — app client id (token audience)

Optional:
    COMMUNITY_INTERNAL_API_KEY — enables X-Community-Internal-Key header auth
    COMMUNITY_INTERNAL_API_KEY_PREVIOUS — rollover key accepted during rotation
"""

from __future__ import annotations

import json
import logging
import os
import time
import urllib.error
import urllib.request
from typing import Any, Callable, Dict, List, Optional, Tuple

import jwt
from jwt.algorithms import RSAAlgorithm

logger = logging.getLogger(__name__)

TOKEN_COOKIE = "community_id_token"
INTERNAL_KEY_HEADER = "x-community-internal-key"


def _normalize_api_keys(*raw_values: str) -> tuple[str, ...]:
    """Return deduplicated, non-empty key values from scalar/csv env sources."""
    keys: list[str] = []
    seen: set[str] = set()
    for raw in raw_values:
        if not raw:
            continue
        for part in str(raw).split(","):
            key = part.strip()
            if not key or key in seen:
                continue
            seen.add(key)
            keys.append(key)
    return tuple(keys)

# ---------------------------------------------------------------------------
# Configuration (read from env; callers may override at import time)
# ---------------------------------------------------------------------------

COGNITO_USER_POOL_ID: str = os.environ.get("COGNITO_USER_POOL_ID", "")
COGNITO_CLIENT_ID: str = os.environ.get("COGNITO_CLIENT_ID", "")
INTERNAL_API_KEYS: tuple[str, ...] = _normalize_api_keys(
    os.environ.get("COMMUNITY_INTERNAL_API_KEY", ""),
    os.environ.get("COMMUNITY_INTERNAL_API_KEY_PREVIOUS", ""),
)

# ---------------------------------------------------------------------------
# JWKS cache
# ---------------------------------------------------------------------------

_jwks_cache: Dict[str, Any] = {}
_jwks_fetched_at: float = 0.0
_JWKS_TTL: float = 3600.0


def _extract_token(event: Dict[str, Any]) -> Optional[str]:
    """Extract the ID token from the bearer header or the token cookie."""
    headers = event.get("headers") or {}
    auth_header = headers.get("authorization") or headers.get("Authorization") or ""
    if auth_header:
        scheme, _, value = auth_header.strip().partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()

    cookie_header = headers.get("cookie") or headers.get("Cookie") or ""
    cookie_parts: List[str] = []
    if cookie_header:
        cookie_parts.extend(
            part.strip() for part in cookie_header.split(";") if part.strip()
        )

    event_cookies = event.get("cookies") or []
    if isinstance(event_cookies, list):
        cookie_parts.extend(
            part.strip()
            for part in event_cookies
            if isinstance(part, str) and part.strip()
        )

    prefix = f"{TOKEN_COOKIE}="
    for part in cookie_parts:
        if part.startswith(prefix):
            return part[len(prefix) :]
    return None


def _get_jwks() -> Dict[str, Any]:
    """Fetch (and cache) Cognito User Pool JWKS."""
    global _jwks_cache, _jwks_fetched_at
    now = time.time()
    if _jwks_cache and (now - _jwks_fetched_at) < _JWKS_TTL:
        return _jwks_cache

    if not COGNITO_USER_POOL_ID:
        raise ValueError("COGNITO_USER_POOL_ID not set")

    region = COGNITO_USER_POOL_ID.split("_")[0]
    url = (
        f"https://cognito-idp.{region}.amazonaws.com/"
        f"{COGNITO_USER_POOL_ID}/.well-known/jwks.json"
    )

    try:
        with urllib.request.urlopen(url, timeout=5) as resp:
            data = json.loads(resp.read())
    except (urllib.error.URLError, OSError) as exc:
        raise ValueError(f"Unable to fetch signing keys: {exc}") from exc

    _jwks_cache = {
        key_data["kid"]: RSAAlgorithm.from_jwk(json.dumps(key_data))
        for key_data in data.get("keys", [])
    }
    _jwks_fetched_at = now
    return _jwks_cache


def _verify_token(token: str) -> Dict[str, Any]:
    """Verify a Cognito JWT (RS256). Returns decoded claims dict."""
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as exc:
        raise ValueError(f"Invalid token header: {exc}") from exc

    kid = header.get("kid")
    alg = header.get("alg", "RS256")
    if alg != "RS256":
        raise ValueError(f"Unexpected token algorithm: {alg}")

    key = _get_jwks().get(kid)
    if key is None:
        raise ValueError("Token key ID not found in JWKS")

    try:
        return jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            audience=COGNITO_CLIENT_ID,
            options={"verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise ValueError("Token has expired. Please sign in again.")
    except jwt.InvalidAudienceError:
        raise ValueError("Token audience mismatch.")
    except jwt.PyJWTError as exc:
        raise ValueError(f"Token validation failed: {exc}") from exc


def _authenticate(
    event: Dict[str, Any],
    *,
    error_fn: Optional[Callable[..., Dict[str, Any]]] = None,
) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Authenticate request via bearer/cookie JWT or internal API key.

    Returns (claims, None) on success or (None, error_response) on failure.

    Args:
        event: API Gateway event dict.
        error_fn: Optional callable(status_code, message) -> response dict.
                  If not provided, returns a plain dict with statusCode/body.
    """
    if error_fn is None:
        error_fn = _default_error

    if INTERNAL_API_KEYS:
        headers = event.get("headers") or {}
        internal_key = (
            headers.get(INTERNAL_KEY_HEADER)
            or headers.get("X-Community-Internal-Key")
            or ""
        )
        if internal_key and internal_key in INTERNAL_API_KEYS:
            return {"auth_mode": "internal-key", "sub": "internal"}, None

    token = _extract_token(event)
    if not token:
        return None, error_fn(401, "Authentication required. Please sign in.")

    try:
        claims = _verify_token(token)
        return claims, None
    except ValueError as exc:
        logger.info("token rejected: %s", exc)
        return None, error_fn(401, str(exc))


def _default_error(status_code: int, message: str) -> Dict[str, Any]:
    """Fallback error response builder."""
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps({"success": False, "error": message}),
    }
