"""cache_service.py — Translation cache policy: enablement, quality gate, size limit, maintenance.

Part of translation_api.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from community_shared.serialization import _emit_structured_observability
from config import (
    CACHE_CLEANUP_INTERVAL,
    CACHE_ENABLED,
    CACHE_MAX_ENTRIES,
    CACHE_QUALITY_THRESHOLD,
    CACHE_TTL,
)
from cache_store import CacheStatistics, CacheStoreError, TranslationCacheEntry, TranslationCacheStore
from translation_utils import calculate_translation_quality, generate_content_hash

logger = logging.getLogger(__name__)

__all__ = [
    "CacheConfig",
    "CacheOperationResult",
    "TranslationCacheService",
]


@dataclass
class CacheConfig:
    enabled: bool = CACHE_ENABLED
    ttl: int = CACHE_TTL
    max_entries: int = CACHE_MAX_ENTRIES
    cleanup_interval: int = CACHE_CLEANUP_INTERVAL
    quality_threshold: float = CACHE_QUALITY_THRESHOLD


@dataclass
class CacheOperationResult:
    success: bool
    from_cache: bool = False
    entry: Optional[TranslationCacheEntry] = None
    error: Optional[str] = None


class TranslationCacheService:
    """Cache policy around :class:`TranslationCacheStore`.

    Hit and miss counters are per container; the stored per-entry hit totals
    are merged in when statistics are reported.
    """

    def __init__(
        self,
        store: Optional[TranslationCacheStore] = None,
        config: Optional[CacheConfig] = None,
    ) -> None:
        self.store = store if store is not None else TranslationCacheStore()
        self.config = config if config is not None else CacheConfig()
        self.hits = 0
        self.misses = 0
        # batch translation looks up from pool threads
        self._counter_lock = threading.Lock()
        self._last_maintenance_at = time.time()

    # -- lookups and writes -----------------------------------------------------

    def get(self, original_text: str, source_language: str, target_language: str) -> CacheOperationResult:
        if not self.config.enabled:
            return CacheOperationResult(success=True)

        content_hash = generate_content_hash(original_text, source_language, target_language)
        entry = self.store.get(original_text, source_language, target_language)
        if entry is None:
            with self._counter_lock:
                self.misses += 1
            _emit_structured_observability(
                component="translation_cache",
                event="miss",
                extra={"content_hash": content_hash, "language_pair": f"{source_language}-{target_language}"},
            )
            return CacheOperationResult(success=True)

        with self._counter_lock:
            self.hits += 1
        _emit_structured_observability(
            component="translation_cache",
            event="hit",
            extra={"content_hash": content_hash, "hit_count": entry.hit_count},
        )
        return CacheOperationResult(success=True, from_cache=True, entry=entry)

    def put(
        self,
        original_text: str,
        translated_text: str,
        source_language: str,
        target_language: str,
        confidence: Optional[float] = None,
        ttl: Optional[int] = None,
    ) -> CacheOperationResult:
        if not self.config.enabled:
            return CacheOperationResult(success=True)

        quality_score = calculate_translation_quality(original_text, translated_text, confidence)
        if quality_score < self.config.quality_threshold:
            logger.info(
                "translation quality %.2f below threshold %.2f, not caching",
                quality_score,
                self.config.quality_threshold,
            )
            return CacheOperationResult(success=True)

        try:
            entry = self.store.put(
                original_text,
                translated_text,
                source_language,
                target_language,
                confidence=confidence,
                quality_score=quality_score,
                ttl_seconds=ttl or self.config.ttl,
            )
        except CacheStoreError as exc:
            return CacheOperationResult(success=False, error=str(exc))

        self.enforce_cache_size_limit()
        return CacheOperationResult(success=True, entry=entry)

    def delete(self, original_text: str, source_language: str, target_language: str) -> CacheOperationResult:
        if not self.config.enabled:
            return CacheOperationResult(success=True)

        content_hash = generate_content_hash(original_text, source_language, target_language)
        try:
            self.store.delete(content_hash)
        except CacheStoreError as exc:
            return CacheOperationResult(success=False, error=str(exc))
        return CacheOperationResult(success=True)

    def get_by_language_pair(
        self,
        source_language: str,
        target_language: str,
        limit: int = 100,
    ) -> List[TranslationCacheEntry]:
        if not self.config.enabled:
            return []
        return self.store.get_by_language_pair(source_language, target_language, limit)

    def clear_all(self) -> CacheOperationResult:
        if not self.config.enabled:
            return CacheOperationResult(success=True)
        try:
            self.store.clear_all()
        except CacheStoreError as exc:
            return CacheOperationResult(success=False, error=str(exc))
        return CacheOperationResult(success=True)

    # -- statistics and maintenance ---------------------------------------------

    def get_statistics(self) -> CacheStatistics:
        if not self.config.enabled:
            return CacheStatistics()

        stats = self.store.get_statistics()
        stats.miss_count = self.misses
        lookups = stats.hit_count + self.misses
        stats.hit_rate = (stats.hit_count / lookups) if lookups else 0.0
        return stats

    def cleanup_expired_entries(self) -> int:
        if not self.config.enabled:
            return 0
        return self.store.cleanup_expired_entries()

    def enforce_cache_size_limit(self) -> int:
        return self.store.limit_cache_size(self.config.max_entries)

    def run_maintenance(self) -> Dict[str, int]:
        """Purge expired entries, then trim to ``max_entries``."""
        if not self.config.enabled:
            return {"expired_deleted": 0, "evicted": 0}

        started = time.time()
        expired = self.cleanup_expired_entries()
        evicted = self.enforce_cache_size_limit()
        self._last_maintenance_at = time.time()
        _emit_structured_observability(
            component="translation_cache",
            event="maintenance",
            latency_ms=int((self._last_maintenance_at - started) * 1000),
            extra={"expired_deleted": expired, "evicted": evicted},
        )
        return {"expired_deleted": expired, "evicted": evicted}

    def maintenance_due(self) -> bool:
        if not self.config.enabled:
            return False
        return (time.time() - self._last_maintenance_at) >= self.config.cleanup_interval

    # -- configuration and health -----------------------------------------------

    def get_config(self) -> Dict[str, Any]:
        return dataclasses.asdict(self.config)

    def update_config(self, **changes: Any) -> Dict[str, Any]:
        known = {field.name for field in dataclasses.fields(CacheConfig)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ValueError(f"Unknown cache config keys: {', '.join(unknown)}")
        self.config = dataclasses.replace(self.config, **changes)
        logger.info("translation cache config updated: %s", self.get_config())
        return self.get_config()

    def health_check(self) -> Dict[str, Any]:
        if not self.config.enabled:
            return {"status": "disabled", "message": "Translation cache is disabled"}
        try:
            statistics = self.get_statistics()
        except Exception as exc:
            logger.error("translation cache health check failed: %s", exc)
            return {"status": "unhealthy", "message": f"Translation cache error: {exc}"}
        return {
            "status": "healthy",
            "message": "Translation cache is operating normally",
            "statistics": statistics.to_dict(),
        }
