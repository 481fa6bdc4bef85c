"""cache_store.py — DynamoDB persistence for content-hash-keyed translation cache entries.

Table layout (TRANSLATION_CACHE_TABLE):
    content_hash      S   partition key, sha256(text|source|target)
    expires_at        N   Unix epoch seconds, configured as the table TTL attribute
    hit_count         N   incremented on every cache hit
    last_accessed_at  S   ISO-8601 UTC, drives least-recently-used eviction

Part of translation_api.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from community_shared.aws_clients import _get_ddb
from community_shared.serialization import (
    _deserialize,
    _emit_structured_observability,
    _now_z,
    _serialize,
    _serialize_item,
    _unix_now,
)
from config import CACHE_TTL, TRANSLATION_CACHE_TABLE
from translation_utils import generate_content_hash

logger = logging.getLogger(__name__)

__all__ = [
    "CacheStatistics",
    "CacheStoreError",
    "TranslationCacheEntry",
    "TranslationCacheStore",
]


class CacheStoreError(Exception):
    """Raised when a cache write or delete cannot be completed."""


@dataclass
class TranslationCacheEntry:
    content_hash: str
    original_text: str
    translated_text: str
    source_language: str
    target_language: str
    created_at: str
    expires_at: int
    hit_count: int = 0
    last_accessed_at: str = ""
    confidence: Optional[float] = None
    quality_score: Optional[float] = None

    @classmethod
    def from_item(cls, raw: Dict[str, Any]) -> "TranslationCacheEntry":
        item = _deserialize(raw)
        return cls(
            content_hash=str(item.get("content_hash") or ""),
            original_text=str(item.get("original_text") or ""),
            translated_text=str(item.get("translated_text") or ""),
            source_language=str(item.get("source_language") or ""),
            target_language=str(item.get("target_language") or ""),
            created_at=str(item.get("created_at") or ""),
            expires_at=int(item.get("expires_at") or 0),
            hit_count=int(item.get("hit_count") or 0),
            last_accessed_at=str(item.get("last_accessed_at") or item.get("created_at") or ""),
            confidence=item.get("confidence"),
            quality_score=item.get("quality_score"),
        )

    def to_item(self) -> Dict[str, Any]:
        return _serialize_item(dataclasses.asdict(self))

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class CacheStatistics:
    total_entries: int = 0
    hit_count: int = 0
    miss_count: int = 0
    hit_rate: float = 0.0
    oldest_entry: Optional[str] = None
    newest_entry: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


class TranslationCacheStore:
    """Translation cache table accessor.

    Reads degrade to a miss (or an empty result) when DynamoDB is unavailable;
    writes and deletes raise :class:`CacheStoreError` so callers can report
    the failure.
    """

    def __init__(self, table_name: str = TRANSLATION_CACHE_TABLE, default_ttl: int = CACHE_TTL) -> None:
        self.table_name = table_name
        self.default_ttl = default_ttl

    # -- single-entry operations ---------------------------------------------

    def put(
        self,
        original_text: str,
        translated_text: str,
        source_language: str,
        target_language: str,
        confidence: Optional[float] = None,
        quality_score: Optional[float] = None,
        ttl_seconds: Optional[int] = None,
    ) -> TranslationCacheEntry:
        now = _now_z()
        entry = TranslationCacheEntry(
            content_hash=generate_content_hash(original_text, source_language, target_language),
            original_text=original_text,
            translated_text=translated_text,
            source_language=source_language,
            target_language=target_language,
            created_at=now,
            expires_at=_unix_now() + int(ttl_seconds or self.default_ttl),
            hit_count=0,
            last_accessed_at=now,
            confidence=confidence,
            quality_score=quality_score,
        )
        try:
            _get_ddb().put_item(TableName=self.table_name, Item=entry.to_item())
        except (BotoCoreError, ClientError) as exc:
            logger.error("translation cache put failed for %s: %s", entry.content_hash, exc)
            raise CacheStoreError(f"Failed to store cache entry: {exc}") from exc

        logger.info("translation cache stored: %s", entry.content_hash)
        return entry

    def get(
        self,
        original_text: str,
        source_language: str,
        target_language: str,
    ) -> Optional[TranslationCacheEntry]:
        content_hash = generate_content_hash(original_text, source_language, target_language)
        try:
            resp = _get_ddb().get_item(TableName=self.table_name, Key=self._key(content_hash))
        except (BotoCoreError, ClientError) as exc:
            logger.error("translation cache read failed for %s: %s", content_hash, exc)
            return None

        raw = resp.get("Item")
        if not raw:
            return None

        entry = TranslationCacheEntry.from_item(raw)
        # DynamoDB TTL deletes lazily, so expired rows can still be returned.
        if entry.expires_at and entry.expires_at < _unix_now():
            logger.info("translation cache entry expired, removing: %s", content_hash)
            try:
                self.delete(content_hash)
            except CacheStoreError:
                pass
            return None

        accessed_at = _now_z()
        entry.hit_count = self._record_hit(content_hash, entry.hit_count, accessed_at)
        entry.last_accessed_at = accessed_at
        return entry

    def delete(self, content_hash: str) -> None:
        try:
            _get_ddb().delete_item(TableName=self.table_name, Key=self._key(content_hash))
        except (BotoCoreError, ClientError) as exc:
            logger.error("translation cache delete failed for %s: %s", content_hash, exc)
            raise CacheStoreError(f"Failed to delete cache entry: {exc}") from exc
        logger.info("translation cache deleted: %s", content_hash)

    # -- scans ------------------------------------------------------------------

    def get_by_language_pair(
        self,
        source_language: str,
        target_language: str,
        limit: int = 100,
    ) -> List[TranslationCacheEntry]:
        entries: List[TranslationCacheEntry] = []
        try:
            for raw in self._scan(
                FilterExpression="source_language = :source AND target_language = :target",
                ExpressionAttributeValues={
                    ":source": _serialize(source_language),
                    ":target": _serialize(target_language),
                },
            ):
                entries.append(TranslationCacheEntry.from_item(raw))
                if len(entries) >= limit:
                    break
        except (BotoCoreError, ClientError) as exc:
            logger.error("language pair scan failed (%s -> %s): %s", source_language, target_language, exc)
            return []
        return entries

    def cleanup_expired_entries(self) -> int:
        now = _unix_now()
        deleted = 0
        try:
            expired = [
                _deserialize(raw)["content_hash"]
                for raw in self._scan(
                    FilterExpression="expires_at < :now",
                    ExpressionAttributeValues={":now": _serialize(now)},
                    ProjectionExpression="content_hash",
                )
            ]
            for content_hash in expired:
                self.delete(content_hash)
                deleted += 1
        except (BotoCoreError, ClientError, CacheStoreError) as exc:
            logger.error("expired cache cleanup failed after %d deletions: %s", deleted, exc)
            return 0

        logger.info("removed %d expired translation cache entries", deleted)
        return deleted

    def get_statistics(self) -> CacheStatistics:
        try:
            entries = self._all_entries()
        except (BotoCoreError, ClientError) as exc:
            logger.error("translation cache statistics scan failed: %s", exc)
            return CacheStatistics()

        total = len(entries)
        total_hits = sum(entry.hit_count for entry in entries)
        stats = CacheStatistics(
            total_entries=total,
            hit_count=total_hits,
            hit_rate=(total_hits / total) if total else 0.0,
        )
        if entries:
            created = sorted(entry.created_at for entry in entries)
            stats.oldest_entry = created[0]
            stats.newest_entry = created[-1]
        return stats

    def limit_cache_size(self, max_entries: int) -> int:
        """Evict least-recently-accessed entries until at most ``max_entries`` remain."""
        try:
            entries = self._all_entries()
        except (BotoCoreError, ClientError) as exc:
            logger.error("cache size scan failed: %s", exc)
            return 0

        overflow = len(entries) - max(0, max_entries)
        if overflow <= 0:
            return 0

        # ISO-8601 Z timestamps with fixed width sort lexicographically.
        victims = sorted(entries, key=lambda entry: entry.last_accessed_at)[:overflow]
        deleted = 0
        for entry in victims:
            try:
                self.delete(entry.content_hash)
            except CacheStoreError:
                break
            deleted += 1

        _emit_structured_observability(
            component="translation_cache",
            event="evicted",
            extra={"deleted": deleted, "max_entries": max_entries, "total_before": len(entries)},
        )
        logger.info("cache size limit evicted %d entries (max %d)", deleted, max_entries)
        return deleted

    def clear_all(self) -> int:
        try:
            hashes = [
                _deserialize(raw)["content_hash"]
                for raw in self._scan(ProjectionExpression="content_hash")
            ]
        except (BotoCoreError, ClientError) as exc:
            raise CacheStoreError(f"Failed to list cache entries: {exc}") from exc

        for content_hash in hashes:
            self.delete(content_hash)
        logger.info("cleared all %d translation cache entries", len(hashes))
        return len(hashes)

    # -- helpers ----------------------------------------------------------------

    @staticmethod
    def _key(content_hash: str) -> Dict[str, Any]:
        return {"content_hash": _serialize(content_hash)}

    def _record_hit(self, content_hash: str, current: int, accessed_at: str) -> int:
        try:
            resp = _get_ddb().update_item(
                TableName=self.table_name,
                Key=self._key(content_hash),
                UpdateExpression=(
                    "SET hit_count = if_not_exists(hit_count, :zero) + :one, "
                    "last_accessed_at = :ts"
                ),
                ConditionExpression="attribute_exists(content_hash)",
                ExpressionAttributeValues={
                    ":zero": _serialize(0),
                    ":one": _serialize(1),
                    ":ts": _serialize(accessed_at),
                },
                ReturnValues="UPDATED_NEW",
            )
        except (BotoCoreError, ClientError) as exc:
            logger.warning("hit count update failed for %s: %s", content_hash, exc)
            return current + 1

        updated = _deserialize(resp.get("Attributes") or {})
        return int(updated.get("hit_count", current + 1))

    def _scan(self, **kwargs: Any) -> Iterator[Dict[str, Any]]:
        ddb = _get_ddb()
        params: Dict[str, Any] = {"TableName": self.table_name, **kwargs}
        while True:
            resp = ddb.scan(**params)
            yield from resp.get("Items", [])
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                return
            params["ExclusiveStartKey"] = last_key

    def _all_entries(self) -> List[TranslationCacheEntry]:
        return [TranslationCacheEntry.from_item(raw) for raw in self._scan()]
