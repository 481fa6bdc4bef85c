"""parameters.py — Cached Parameter Store and Secrets Manager lookups.

Parameter names are prefixed with /{PROJECT_NAME}/{ENVIRONMENT}. Values are
cached module-level so warm invocations skip the SSM round trip.

Part of translation_api.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from community_shared.aws_clients import _get_secretsmanager, _get_ssm
from config import ENVIRONMENT, PARAMETER_CACHE_TTL, PROJECT_NAME, SECRET_CACHE_TTL

logger = logging.getLogger(__name__)

__all__ = [
    "ParameterStoreError",
    "SecretsError",
    "cache_stats",
    "clear_parameter_cache",
    "clear_secret_cache",
    "get_parameter",
    "get_parameters",
    "get_secret",
    "parameter_name",
]

# name -> (value, expires_at)
_parameter_cache: Dict[str, Tuple[str, float]] = {}
_secret_cache: Dict[str, Tuple[Any, float]] = {}


class ParameterStoreError(Exception):
    def __init__(self, message: str, parameter_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.parameter_name = parameter_name


class SecretsError(Exception):
    def __init__(self, message: str, secret_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.secret_name = secret_name


def parameter_name(path: str) -> str:
    return f"/{PROJECT_NAME}/{ENVIRONMENT}{path}"


def _cached(cache: Dict[str, Tuple[Any, float]], key: str) -> Optional[Any]:
    hit = cache.get(key)
    if hit and hit[1] > time.time():
        return hit[0]
    return None


def get_parameter(path: str) -> str:
    name = parameter_name(path)
    cached = _cached(_parameter_cache, name)
    if cached is not None:
        return cached

    try:
        resp = _get_ssm().get_parameter(Name=name, WithDecryption=False)
    except (BotoCoreError, ClientError) as exc:
        raise ParameterStoreError(f"Failed to retrieve parameter {name}: {exc}", name) from exc

    value = (resp.get("Parameter") or {}).get("Value")
    if not value:
        raise ParameterStoreError(f"Parameter value is empty for parameter: {name}", name)

    _parameter_cache[name] = (value, time.time() + PARAMETER_CACHE_TTL)
    return value


def get_parameters(paths: List[str]) -> Dict[str, str]:
    """Resolve several paths, using one GetParameters call for uncached names."""
    result: Dict[str, str] = {}
    name_to_path: Dict[str, str] = {}
    for path in paths:
        name = parameter_name(path)
        cached = _cached(_parameter_cache, name)
        if cached is not None:
            result[path] = cached
        else:
            name_to_path[name] = path

    if not name_to_path:
        return result

    try:
        resp = _get_ssm().get_parameters(Names=list(name_to_path), WithDecryption=False)
    except (BotoCoreError, ClientError) as exc:
        raise ParameterStoreError(
            f"Failed to retrieve parameters {', '.join(name_to_path)}: {exc}"
        ) from exc

    expires_at = time.time() + PARAMETER_CACHE_TTL
    for param in resp.get("Parameters") or []:
        name = param.get("Name")
        value = param.get("Value")
        if name in name_to_path and value:
            result[name_to_path[name]] = value
            _parameter_cache[name] = (value, expires_at)

    invalid = resp.get("InvalidParameters") or []
    if invalid:
        raise ParameterStoreError(f"Invalid parameters: {', '.join(invalid)}")
    return result


def get_secret(secret_name: str) -> Any:
    """Return the secret's JSON payload (or raw string when it is not JSON)."""
    cached = _cached(_secret_cache, secret_name)
    if cached is not None:
        return cached

    try:
        resp = _get_secretsmanager().get_secret_value(SecretId=secret_name)
    except (BotoCoreError, ClientError) as exc:
        raise SecretsError(f"Failed to retrieve secret {secret_name}: {exc}", secret_name) from exc

    raw = resp.get("SecretString") or ""
    if not raw:
        raise SecretsError(f"Secret {secret_name} has no string value", secret_name)
    try:
        value: Any = json.loads(raw)
    except json.JSONDecodeError:
        value = raw

    _secret_cache[secret_name] = (value, time.time() + SECRET_CACHE_TTL)
    return value


def clear_parameter_cache() -> None:
    _parameter_cache.clear()


def clear_secret_cache(secret_name: Optional[str] = None) -> None:
    if secret_name:
        _secret_cache.pop(secret_name, None)
    else:
        _secret_cache.clear()


def cache_stats() -> Dict[str, Any]:
    return {
        "parameters": {"size": len(_parameter_cache), "entries": sorted(_parameter_cache)},
        "secrets": {"size": len(_secret_cache), "entries": sorted(_secret_cache)},
    }
