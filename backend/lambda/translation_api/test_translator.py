"""test_translator.py — TranslationService tests with Amazon Translate and the cache mocked."""

from __future__ import annotations

import os
import sys
import unittest
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError, EndpointConnectionError

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "shared_layer", "python"))

import translator  # noqa: E402
from cache_service import CacheOperationResult  # noqa: E402
from cache_store import TranslationCacheEntry  # noqa: E402
from parameters import ParameterStoreError  # noqa: E402
from translator import TranslationError, TranslationRequest, TranslationService  # noqa: E402


def _translate_error(code):
    return ClientError({"Error": {"Code": code, "Message": code}}, "TranslateText")


def _fake_translate(Text, SourceLanguageCode, TargetLanguageCode):
    source = "en" if SourceLanguageCode == "auto" else SourceLanguageCode
    return {
        "TranslatedText": f"[{TargetLanguageCode}] {Text}",
        "SourceLanguageCode": source,
        "TargetLanguageCode": TargetLanguageCode,
    }


class _TranslatorTestCase(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()
        self.client.translate_text.side_effect = _fake_translate
        self.cache = MagicMock()
        self.cache.get.return_value = CacheOperationResult(success=True)
        self.cache.put.return_value = CacheOperationResult(success=True)
        self.params = {}
        for p in (
            patch.object(translator, "_get_translate", return_value=self.client),
            patch.object(translator, "get_parameters", side_effect=lambda paths: dict(self.params)),
        ):
            p.start()
            self.addCleanup(p.stop)
        self.service = TranslationService(cache=self.cache)


class ConfigTests(_TranslatorTestCase):
    def test_parameters_override_defaults(self):
        self.params = {
            "/translate/source-languages": "ja, en, fr",
            "/translate/max-text-length": "10",
            "/translate/confidence-threshold": "0.5",
        }

        self.assertEqual(self.service.get_supported_languages(), ["ja", "en", "fr"])
        with self.assertRaises(TranslationError) as ctx:
            self.service.translate_text(TranslationRequest(text="x" * 11, target_language="ja"))
        self.assertEqual(ctx.exception.code, "TEXT_TOO_LONG")
        self.assertEqual(ctx.exception.status_code, 400)

    def test_parameter_store_failure_uses_defaults(self):
        with patch.object(translator, "get_parameters", side_effect=ParameterStoreError("denied")):
            service = TranslationService(cache=self.cache)
            self.assertEqual(service.get_supported_languages(), ["ja", "en", "zh", "ko"])


class DetectionTests(_TranslatorTestCase):
    def test_detects_scripts(self):
        cases = {
            "こんにちは": ("ja", 0.8),
            "漢字とかな": ("ja", 0.8),
            "안녕하세요": ("ko", 0.8),
            "你好世界": ("zh", 0.7),
            "hello world": ("en", 0.6),
        }
        for text, (code, score) in cases.items():
            with self.subTest(text=text):
                result = self.service.detect_language(text)
                self.assertEqual((result.language_code, result.score), (code, score))

    def test_detect_empty_text(self):
        with self.assertRaises(TranslationError) as ctx:
            self.service.detect_language("   ")
        self.assertEqual(ctx.exception.code, "EMPTY_TEXT")


class TranslateTextTests(_TranslatorTestCase):
    def test_translates_and_caches_on_miss(self):
        result = self.service.translate_text(
            TranslationRequest(text="hello", source_language="EN", target_language="ja-JP")
        )

        self.assertEqual(result.translated_text, "[ja] hello")
        self.assertEqual((result.source_language, result.target_language), ("en", "ja"))
        self.assertFalse(result.from_cache)
        self.client.translate_text.assert_called_once_with(
            Text="hello", SourceLanguageCode="en", TargetLanguageCode="ja"
        )
        self.cache.put.assert_called_once_with("hello", "[ja] hello", "en", "ja", None)

    def test_cache_hit_skips_translate(self):
        entry = TranslationCacheEntry(
            content_hash="h",
            original_text="hello",
            translated_text="こんにちは",
            source_language="en",
            target_language="ja",
            created_at="2025-10-09T00:00:00.000Z",
            expires_at=2_000_000_000,
            hit_count=3,
            confidence=0.9,
        )
        self.cache.get.return_value = CacheOperationResult(success=True, from_cache=True, entry=entry)

        result = self.service.translate_text(
            TranslationRequest(text="hello", source_language="en", target_language="ja")
        )

        self.assertTrue(result.from_cache)
        self.assertEqual(result.translated_text, "こんにちは")
        self.assertEqual(result.confidence, 0.9)
        self.client.translate_text.assert_not_called()
        self.cache.put.assert_not_called()

    def test_detects_source_when_missing(self):
        result = self.service.translate_text(TranslationRequest(text="こんにちは", target_language="en"))

        self.assertEqual(result.source_language, "ja")
        self.assertEqual(result.confidence, 0.8)
        self.cache.get.assert_called_once_with("こんにちは", "ja", "en")

    def test_same_language_passes_through(self):
        result = self.service.translate_text(
            TranslationRequest(text="hello", source_language="en", target_language="en")
        )
        self.assertEqual(result.translated_text, "hello")
        self.client.translate_text.assert_not_called()
        self.cache.get.assert_not_called()

    def test_validation_errors(self):
        cases = [
            (TranslationRequest(text="  ", target_language="ja"), "EMPTY_TEXT"),
            (TranslationRequest(text="hello", target_language=""), "MISSING_TARGET_LANGUAGE"),
            (TranslationRequest(text="x" * 5001, target_language="ja"), "TEXT_TOO_LONG"),
        ]
        for request, code in cases:
            with self.subTest(code=code):
                with self.assertRaises(TranslationError) as ctx:
                    self.service.translate_text(request)
                self.assertEqual(ctx.exception.code, code)

    def test_translate_service_errors_are_mapped(self):
        cases = {
            "UnsupportedLanguagePairException": ("UNSUPPORTED_LANGUAGE_PAIR", 400),
            "TextSizeLimitExceededException": ("TEXT_SIZE_LIMIT_EXCEEDED", 413),
            "ThrottlingException": ("TRANSLATION_SERVICE_ERROR", 502),
        }
        for aws_code, (code, status) in cases.items():
            with self.subTest(aws_code=aws_code):
                self.client.translate_text.side_effect = _translate_error(aws_code)
                with self.assertRaises(TranslationError) as ctx:
                    self.service.translate_text(
                        TranslationRequest(text="hello", source_language="en", target_language="ja")
                    )
                self.assertEqual(ctx.exception.code, code)
                self.assertEqual(ctx.exception.status_code, status)
        self.cache.put.assert_not_called()

    def test_connection_error_is_service_error(self):
        self.client.translate_text.side_effect = EndpointConnectionError(endpoint_url="https://translate")
        with self.assertRaises(TranslationError) as ctx:
            self.service.translate_text(
                TranslationRequest(text="hello", source_language="en", target_language="ja")
            )
        self.assertEqual(ctx.exception.code, "TRANSLATION_SERVICE_ERROR")

    def test_empty_result(self):
        self.client.translate_text.side_effect = None
        self.client.translate_text.return_value = {"TranslatedText": ""}
        with self.assertRaises(TranslationError) as ctx:
            self.service.translate_text(
                TranslationRequest(text="hello", source_language="en", target_language="ja")
            )
        self.assertEqual(ctx.exception.code, "EMPTY_TRANSLATION_RESULT")

    def test_preserve_markdown(self):
        result = self.service.translate_text(
            TranslationRequest(
                text="see `code` here",
                source_language="en",
                target_language="ja",
                preserve_markdown=True,
            )
        )
        sent = self.client.translate_text.call_args.kwargs["Text"]
        self.assertNotIn("`code`", sent)
        self.assertEqual(result.translated_text, "[ja] see `code` here")


class BatchTests(_TranslatorTestCase):
    def test_batch_preserves_order_and_isolates_failures(self):
        outcomes = self.service.translate_batch(
            ["one", "", "three"], target_language="ja", source_language="en", max_concurrency=3
        )

        self.assertEqual([o["index"] for o in outcomes], [0, 1, 2])
        self.assertTrue(outcomes[0]["success"])
        self.assertEqual(outcomes[0]["result"]["translated_text"], "[ja] one")
        self.assertFalse(outcomes[1]["success"])
        self.assertEqual(outcomes[1]["error"]["code"], "EMPTY_TEXT")
        self.assertEqual(outcomes[2]["result"]["translated_text"], "[ja] three")

    def test_batch_unordered_returns_every_item(self):
        outcomes = self.service.translate_batch(
            ["a", "b", "c", "d"], target_language="ja", source_language="en", preserve_order=False
        )
        self.assertEqual(sorted(o["index"] for o in outcomes), [0, 1, 2, 3])

    def test_batch_uses_same_cache_key_as_single_translation(self):
        self.service.translate_text(
            TranslationRequest(text="  padded  ", source_language="en", target_language="ja")
        )
        self.service.translate_batch(["  padded  "], target_language="ja", source_language="en")

        lookups = [c.args for c in self.cache.get.call_args_list]
        self.assertEqual(lookups, [("  padded  ", "en", "ja"), ("  padded  ", "en", "ja")])

    def test_batch_too_many_texts(self):
        with self.assertRaises(TranslationError) as ctx:
            self.service.translate_batch(["x"] * 101, target_language="ja")
        self.assertEqual(ctx.exception.code, "TOO_MANY_TEXTS")


class MetadataAndHealthTests(_TranslatorTestCase):
    def test_language_name(self):
        self.assertEqual(TranslationService.get_language_name("ja"), "日本語")
        self.assertEqual(TranslationService.get_language_name("xx"), "xx")

    def test_health_check_healthy(self):
        health = self.service.health_check()
        self.assertEqual(health["status"], "healthy")
        self.assertIn("config_cache", health)

    def test_health_check_unhealthy(self):
        self.client.translate_text.side_effect = _translate_error("ServiceUnavailableException")
        health = self.service.health_check()
        self.assertEqual(health["status"], "unhealthy")
        self.assertEqual(health["code"], "TRANSLATION_SERVICE_ERROR")


if __name__ == "__main__":
    unittest.main()
