"""translation_utils.py — Content hashing, language codes, quality scoring, markdown protection.

Part of translation_api.
"""
from __future__ import annotations

import hashlib
import re
from typing import Dict, Iterable, Optional, Tuple

from config import TRANSLATION_COST_PER_CHARACTER

__all__ = [
    "calculate_translation_cost",
    "calculate_translation_quality",
    "evaluate_confidence",
    "generate_content_hash",
    "is_supported_language_pair",
    "normalize_language_code",
    "protect_markdown",
    "restore_markdown",
    "text_length",
]

# Order matters: images before links, bold before italic.
_MARKDOWN_PATTERNS = (
    re.compile(r"```[\s\S]*?```"),
    re.compile(r"`[^`]+`"),
    re.compile(r"!\[[^\]]*\]\([^)]+\)"),
    re.compile(r"\[[^\]]+\]\([^)]+\)"),
    re.compile(r"\*\*[^*]+\*\*"),
    re.compile(r"\*[^*]+\*"),
)


def generate_content_hash(text: str, source_language: str, target_language: str) -> str:
    """SHA-256 hex digest of ``text|source|target``, the cache partition key."""
    content = f"{text}|{source_language}|{target_language}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def normalize_language_code(language_code: str) -> str:
    return str(language_code or "").strip().lower().split("-")[0]


def is_supported_language_pair(
    source_language: str,
    target_language: str,
    supported: Iterable[str],
) -> bool:
    allowed = {normalize_language_code(code) for code in supported}
    return (
        normalize_language_code(source_language) in allowed
        and normalize_language_code(target_language) in allowed
    )


def text_length(text: str) -> int:
    # str length is already a code point count
    return len(text)


def calculate_translation_quality(
    original_text: str,
    translated_text: str,
    confidence: Optional[float] = None,
) -> float:
    """Heuristic quality score in [0, 1] used to gate cache writes."""
    score = 0.5
    if confidence is not None:
        score += confidence * 0.3

    if original_text:
        ratio = len(translated_text) / len(original_text)
        if 0.3 <= ratio <= 3.0:
            score += 0.2

    if original_text != translated_text:
        score += 0.1

    return min(1.0, max(0.0, score))


def evaluate_confidence(score: float) -> str:
    if score >= 0.9:
        return "high"
    if score >= 0.7:
        return "medium"
    return "low"


def protect_markdown(text: str) -> Tuple[str, Dict[str, str]]:
    """Swap markdown spans for placeholders so the translator leaves them alone."""
    placeholders: Dict[str, str] = {}
    counter = 0

    def _swap(match: "re.Match[str]") -> str:
        nonlocal counter
        placeholder = f"__PROTECTED_{counter}__"
        counter += 1
        placeholders[placeholder] = match.group(0)
        return placeholder

    protected = text
    for pattern in _MARKDOWN_PATTERNS:
        protected = pattern.sub(_swap, protected)
    return protected, placeholders


def restore_markdown(text: str, placeholders: Dict[str, str]) -> str:
    # Later placeholders may sit inside earlier ones' spans; restore newest first.
    restored = text
    for placeholder in reversed(list(placeholders)):
        restored = restored.replace(placeholder, placeholders[placeholder], 1)
    return restored


def calculate_translation_cost(character_count: int) -> float:
    return character_count * TRANSLATION_COST_PER_CHARACTER
