"""translator.py — Amazon Translate wrapper with language detection and cache read-through.

Part of translation_api.
"""
from __future__ import annotations

import dataclasses
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from community_shared.aws_clients import _get_translate
from community_shared.serialization import _emit_structured_observability
from config import (
    BATCH_MAX_CONCURRENCY,
    BATCH_MAX_TEXTS,
    DEFAULT_CONFIDENCE_THRESHOLD,
    DEFAULT_REGION,
    DEFAULT_SUPPORTED_LANGUAGES,
    LANGUAGE_NAMES,
    MAX_TEXT_LENGTH,
    PARAMETER_PATHS,
)
from cache_service import TranslationCacheService
from parameters import ParameterStoreError, cache_stats, get_parameters
from translation_utils import normalize_language_code, protect_markdown, restore_markdown

logger = logging.getLogger(__name__)

__all__ = [
    "ERROR_STATUS_CODES",
    "LanguageDetectionResult",
    "TranslationError",
    "TranslationRequest",
    "TranslationResult",
    "TranslationService",
]

_KANA = re.compile(r"[\u3040-\u30ff]")
_HANGUL = re.compile(r"[\uac00-\ud7af\u1100-\u11ff]")
_CJK = re.compile(r"[\u4e00-\u9fff]")

ERROR_STATUS_CODES = {
    "EMPTY_TEXT": 400,
    "MISSING_TARGET_LANGUAGE": 400,
    "TEXT_TOO_LONG": 400,
    "TOO_MANY_TEXTS": 400,
    "UNSUPPORTED_LANGUAGE_PAIR": 400,
    "TEXT_SIZE_LIMIT_EXCEEDED": 413,
    "LANGUAGE_DETECTION_FAILED": 422,
    "EMPTY_TRANSLATION_RESULT": 502,
    "TRANSLATION_SERVICE_ERROR": 502,
    "DETECTION_SERVICE_ERROR": 502,
}


class TranslationError(Exception):
    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.code = code

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_CODES.get(self.code, 500)


@dataclass
class TranslationRequest:
    text: str
    target_language: str
    source_language: Optional[str] = None
    preserve_markdown: bool = False


@dataclass
class TranslationResult:
    original_text: str
    translated_text: str
    source_language: str
    target_language: str
    confidence: Optional[float] = None
    from_cache: bool = False
    processing_time: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class LanguageDetectionResult:
    language_code: str
    score: float


class TranslationService:
    def __init__(self, cache: Optional[TranslationCacheService] = None) -> None:
        self.cache = cache if cache is not None else TranslationCacheService()
        self._config: Optional[Dict[str, Any]] = None

    # -- configuration ------------------------------------------------------------

    def _load_config(self) -> Dict[str, Any]:
        if self._config is not None:
            return self._config

        config: Dict[str, Any] = {
            "region": DEFAULT_REGION,
            "supported_languages": list(DEFAULT_SUPPORTED_LANGUAGES),
            "max_text_length": MAX_TEXT_LENGTH,
            "confidence_threshold": DEFAULT_CONFIDENCE_THRESHOLD,
        }
        try:
            params = get_parameters(list(PARAMETER_PATHS.values()))
        except ParameterStoreError as exc:
            logger.warning("parameter store unavailable, using defaults: %s", exc)
            params = {}

        region = params.get(PARAMETER_PATHS["region"])
        if region:
            config["region"] = region.strip()
        languages = params.get(PARAMETER_PATHS["supported_languages"])
        if languages:
            parsed = [normalize_language_code(code) for code in languages.split(",") if code.strip()]
            if parsed:
                config["supported_languages"] = parsed
        try:
            if params.get(PARAMETER_PATHS["confidence_threshold"]):
                config["confidence_threshold"] = float(params[PARAMETER_PATHS["confidence_threshold"]])
            if params.get(PARAMETER_PATHS["max_text_length"]):
                config["max_text_length"] = int(params[PARAMETER_PATHS["max_text_length"]])
        except ValueError as exc:
            logger.warning("ignoring malformed translate parameter: %s", exc)

        logger.info("translation service config loaded: %s", config)
        self._config = config
        return config

    # -- detection ----------------------------------------------------------------

    def detect_language(self, text: str) -> LanguageDetectionResult:
        config = self._load_config()
        if not text or not text.strip():
            raise TranslationError("Text for language detection is empty", "EMPTY_TEXT")
        if len(text) > config["max_text_length"]:
            raise TranslationError(
                f"Text is too long (max {config['max_text_length']} characters)",
                "TEXT_TOO_LONG",
            )

        if _KANA.search(text):
            return LanguageDetectionResult("ja", 0.8)
        if _HANGUL.search(text):
            return LanguageDetectionResult("ko", 0.8)
        if _CJK.search(text):
            return LanguageDetectionResult("zh", 0.7)
        return LanguageDetectionResult("en", 0.6)

    # -- translation --------------------------------------------------------------

    def translate_text(self, request: TranslationRequest, request_id: str = "") -> TranslationResult:
        started = time.time()
        config = self._load_config()

        text = request.text or ""
        if not text.strip():
            raise TranslationError("Text to translate is empty", "EMPTY_TEXT")
        if not request.target_language:
            raise TranslationError("Target language is required", "MISSING_TARGET_LANGUAGE")
        if len(text) > config["max_text_length"]:
            raise TranslationError(
                f"Text is too long (max {config['max_text_length']} characters)",
                "TEXT_TOO_LONG",
            )

        target_language = normalize_language_code(request.target_language)
        source_language = normalize_language_code(request.source_language or "")
        confidence: Optional[float] = None
        if not source_language:
            try:
                detection = self.detect_language(text)
            except TranslationError as exc:
                logger.warning("language detection failed, deferring to Translate: %s", exc)
                source_language = "auto"
            else:
                source_language = detection.language_code
                confidence = detection.score
                if confidence < config["confidence_threshold"]:
                    logger.warning(
                        "low language detection confidence %.2f (threshold %.2f)",
                        confidence,
                        config["confidence_threshold"],
                    )

        if source_language == target_language:
            return TranslationResult(
                original_text=text,
                translated_text=text,
                source_language=source_language,
                target_language=target_language,
                confidence=confidence,
                processing_time=_elapsed_ms(started),
            )

        cached = self.cache.get(text, source_language, target_language)
        if cached.success and cached.from_cache and cached.entry is not None:
            entry = cached.entry
            return TranslationResult(
                original_text=entry.original_text,
                translated_text=entry.translated_text,
                source_language=entry.source_language,
                target_language=entry.target_language,
                confidence=entry.confidence,
                from_cache=True,
                processing_time=_elapsed_ms(started),
            )

        translated, final_source, final_target = self._call_translate(
            text, source_language, target_language, request.preserve_markdown
        )
        # Store under the key the lookup used so an "auto" request hits next time.
        self.cache.put(text, translated, source_language, target_language, confidence)

        latency = _elapsed_ms(started)
        _emit_structured_observability(
            component="translation_api",
            event="translated",
            request_id=request_id,
            latency_ms=latency,
            extra={"source_language": final_source, "target_language": final_target, "characters": len(text)},
        )
        return TranslationResult(
            original_text=text,
            translated_text=translated,
            source_language=final_source,
            target_language=final_target,
            confidence=confidence,
            from_cache=False,
            processing_time=latency,
        )

    def _call_translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        preserve_markdown: bool,
    ) -> tuple:
        payload, placeholders = (protect_markdown(text) if preserve_markdown else (text, {}))
        try:
            resp = _get_translate().translate_text(
                Text=payload,
                SourceLanguageCode=source_language,
                TargetLanguageCode=target_language,
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            logger.error("Translate call failed (%s): %s", code, exc)
            if code == "UnsupportedLanguagePairException":
                raise TranslationError(
                    f"Unsupported language pair: {source_language} -> {target_language}",
                    "UNSUPPORTED_LANGUAGE_PAIR",
                ) from exc
            if code == "TextSizeLimitExceededException":
                raise TranslationError("Text size limit exceeded", "TEXT_SIZE_LIMIT_EXCEEDED") from exc
            raise TranslationError("Translation service error", "TRANSLATION_SERVICE_ERROR") from exc
        except BotoCoreError as exc:
            logger.error("Translate call failed: %s", exc)
            raise TranslationError("Translation service error", "TRANSLATION_SERVICE_ERROR") from exc

        translated = resp.get("TranslatedText") or ""
        if not translated:
            raise TranslationError("Translation result is empty", "EMPTY_TRANSLATION_RESULT")
        if placeholders:
            translated = restore_markdown(translated, placeholders)
        return (
            translated,
            resp.get("SourceLanguageCode") or source_language,
            resp.get("TargetLanguageCode") or target_language,
        )

    def translate_batch(
        self,
        texts: List[str],
        target_language: str,
        source_language: Optional[str] = None,
        max_concurrency: int = 5,
        preserve_order: bool = True,
        request_id: str = "",
    ) -> List[Dict[str, Any]]:
        """Translate each text independently; one failure does not fail the batch."""
        if len(texts) > BATCH_MAX_TEXTS:
            raise TranslationError(f"Batch translation accepts at most {BATCH_MAX_TEXTS} texts", "TOO_MANY_TEXTS")
        workers = max(1, min(int(max_concurrency), BATCH_MAX_CONCURRENCY, len(texts) or 1))

        def _one(index: int, text: str) -> Dict[str, Any]:
            try:
                result = self.translate_text(
                    TranslationRequest(
                        text=str(text or ""),
                        target_language=target_language,
                        source_language=source_language,
                    ),
                    request_id=request_id,
                )
            except TranslationError as exc:
                return {
                    "index": index,
                    "success": False,
                    "result": None,
                    "error": {"code": exc.code, "message": str(exc), "original_text": text, "index": index},
                }
            return {"index": index, "success": True, "result": result.to_dict(), "error": None}

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(_one, index, text) for index, text in enumerate(texts)]
            if preserve_order:
                return [future.result() for future in futures]
            return [future.result() for future in as_completed(futures)]

    # -- metadata -----------------------------------------------------------------

    def get_supported_languages(self) -> List[str]:
        return list(self._load_config()["supported_languages"])

    @staticmethod
    def get_language_name(language_code: str) -> str:
        return LANGUAGE_NAMES.get(language_code, language_code)

    def health_check(self) -> Dict[str, Any]:
        try:
            result = self.translate_text(
                TranslationRequest(text="Hello", source_language="en", target_language="ja")
            )
        except TranslationError as exc:
            logger.error("translation health check failed: %s", exc)
            return {"status": "unhealthy", "message": f"Translation service error: {exc}", "code": exc.code}

        if not result.translated_text:
            return {"status": "unhealthy", "message": "Translation self-test returned no text"}
        return {
            "status": "healthy",
            "message": "Translation service is operating normally",
            "from_cache": result.from_cache,
            "config_cache": cache_stats(),
        }


def _elapsed_ms(started: float) -> int:
    return int((time.time() - started) * 1000)
