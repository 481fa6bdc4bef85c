"""config.py — Central configuration — environment variables, constants, rate-limit rules, logging.

Part of translation_api.
"""
from __future__ import annotations

import logging
import os


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _bool_env(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("false", "0", "no", "off")


__all__ = [
    "ADMIN_SECRET_NAME",
    "ADMIN_TOKEN",
    "BATCH_MAX_CONCURRENCY",
    "BATCH_MAX_TEXTS",
    "CACHE_CLEANUP_INTERVAL",
    "CACHE_ENABLED",
    "CACHE_MAX_ENTRIES",
    "CACHE_QUALITY_THRESHOLD",
    "CACHE_TTL",
    "DEFAULT_CONFIDENCE_THRESHOLD",
    "DEFAULT_REGION",
    "DEFAULT_SUPPORTED_LANGUAGES",
    "ENVIRONMENT",
    "LANGUAGE_NAMES",
    "MAX_TEXT_LENGTH",
    "PARAMETER_CACHE_TTL",
    "PARAMETER_PATHS",
    "PROJECT_NAME",
    "RATE_LIMIT_RULES",
    "RATE_LIMIT_SWEEP_INTERVAL_MS",
    "SECRET_CACHE_TTL",
    "TRANSLATION_CACHE_TABLE",
    "TRANSLATION_COST_PER_CHARACTER",
    "logger",
]

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_REGION = os.environ.get("AWS_REGION", "ap-northeast-1")
PROJECT_NAME = os.environ.get("PROJECT_NAME", "multilingual-community")
ENVIRONMENT = os.environ.get("ENVIRONMENT", "dev")

TRANSLATION_CACHE_TABLE = os.environ.get("TRANSLATION_CACHE_TABLE", "TranslationCache")
CACHE_ENABLED = _bool_env("TRANSLATION_CACHE_ENABLED", True)
CACHE_TTL = _int_env("TRANSLATION_CACHE_TTL", 86400)
CACHE_MAX_ENTRIES = _int_env("TRANSLATION_CACHE_MAX_ENTRIES", 10000)
CACHE_CLEANUP_INTERVAL = _int_env("TRANSLATION_CACHE_CLEANUP_INTERVAL", 3600)
CACHE_QUALITY_THRESHOLD = _float_env("TRANSLATION_CACHE_QUALITY_THRESHOLD", 0.7)

# Amazon Translate limits
MAX_TEXT_LENGTH = _int_env("TRANSLATE_MAX_TEXT_LENGTH", 5000)
BATCH_MAX_TEXTS = 100
BATCH_MAX_CONCURRENCY = 10
DEFAULT_CONFIDENCE_THRESHOLD = _float_env("TRANSLATE_CONFIDENCE_THRESHOLD", 0.7)
TRANSLATION_COST_PER_CHARACTER = 0.000015  # USD, $15 per million characters

DEFAULT_SUPPORTED_LANGUAGES = ("ja", "en", "zh", "ko")
LANGUAGE_NAMES = {
    "ja": "日本語",
    "en": "English",
    "zh": "中文",
    "ko": "한국어",
    "es": "Español",
    "fr": "Français",
    "de": "Deutsch",
    "it": "Italiano",
    "pt": "Português",
    "ru": "Русский",
    "ar": "العربية",
    "hi": "हिन्दी",
}

# Parameter Store paths, relative to /{PROJECT_NAME}/{ENVIRONMENT}
PARAMETER_PATHS = {
    "region": "/app/region",
    "supported_languages": "/translate/source-languages",
    "confidence_threshold": "/translate/confidence-threshold",
    "max_text_length": "/translate/max-text-length",
}
PARAMETER_CACHE_TTL = 600.0
SECRET_CACHE_TTL = 300.0

ADMIN_TOKEN = os.environ.get("ADMIN_TOKEN", "")
ADMIN_SECRET_NAME = os.environ.get("ADMIN_SECRET_NAME", f"{ENVIRONMENT}/{PROJECT_NAME}/admin")

# ---------------------------------------------------------------------------
# Rate limiting (route key -> rule)
# ---------------------------------------------------------------------------

RATE_LIMIT_SWEEP_INTERVAL_MS = 5 * 60 * 1000

RATE_LIMIT_RULES = {
    "translate": {"window_ms": 60_000, "max": 100},
    "translate_batch": {"window_ms": 300_000, "max": 10},
    "detect": {"window_ms": 60_000, "max": 50},
    "languages": {"window_ms": 60_000, "max": 20},
    "translate_health": {"window_ms": 60_000, "max": 10},
    "cache_admin": {"window_ms": 60_000, "max": 30},
}

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)
