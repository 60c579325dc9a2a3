"""Heuristic quality hints for extracted text.

No model calls: every signal is a character or word statistic. The hint
tells downstream code whether extracted text can be trusted on its own or
whether an image of the same content is the better input.

Classification order matters. ``low`` is checked before ``ocr_like`` so
badly garbled text is never given the softer OCR label, and OCR detection
needs several corroborating signals so ordinary prose is not flagged.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from contextir.models.sources import QualityHint

# Single-character words that are normal in English prose.
_COMMON_SINGLE_CHAR_WORDS: frozenset[str] = frozenset({"a", "i", "o"})

_REPEATED_RUN_RE = re.compile(r"(.)\1{3,}")

_OCR_ERROR_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bl1\b", re.IGNORECASE | re.ASCII),
    re.compile(r"\b0O\b", re.IGNORECASE | re.ASCII),
    re.compile(r"\bO0\b", re.IGNORECASE | re.ASCII),
    re.compile(r"\b1l\b", re.IGNORECASE | re.ASCII),
    # pipe directly before a letter
    re.compile(r"[|](?=[a-z])", re.IGNORECASE | re.ASCII),
    # 4+ consecutive symbols that are not ordinary punctuation
    re.compile(r"[^\w\s.,!?:;'\"()-]{4,}", re.ASCII),
)

_WHITESPACE_RE = re.compile(r"\s")

_DESCRIPTIONS: dict[QualityHint, str] = {
    QualityHint.good: "Good quality - clean, well-structured text",
    QualityHint.mixed: "Mixed quality - some formatting issues or minor artifacts",
    QualityHint.low: "Low quality - sparse or garbled content",
    QualityHint.ocr_like: "OCR-like quality - appears to be optical character recognition output",
}


@dataclass(frozen=True, slots=True)
class TextMetrics:
    char_count: int
    word_count: int
    line_count: int
    avg_chars_per_line: float
    avg_word_length: float
    non_ascii_ratio: float
    control_char_ratio: float
    whitespace_ratio: float
    single_char_words: int
    single_char_word_ratio: float
    repeated_sequences: int
    ocr_error_patterns: int


def assess_quality(text: object) -> QualityHint:
    """Classify *text* as good, mixed, low or ocr_like.

    Never raises. ``None`` and blank strings are ``low``; other non-string
    input is coerced with ``str()`` first.
    """
    if text is None:
        return QualityHint.low
    if not isinstance(text, str):
        text = str(text)
    if not text.strip():
        return QualityHint.low

    metrics = compute_metrics(text)
    if _is_low_quality(metrics):
        return QualityHint.low
    if _is_likely_ocr(metrics):
        return QualityHint.ocr_like
    if _is_mixed_quality(metrics):
        return QualityHint.mixed
    return QualityHint.good


def compute_metrics(text: str) -> TextMetrics:
    char_count = len(text)
    lines = [line for line in text.split("\n") if line.strip()]
    line_count = max(len(lines), 1)

    words = text.split()
    word_count = len(words)
    avg_word_length = sum(len(word) for word in words) / word_count if word_count else 0.0

    single_char_words = sum(
        1 for word in words if len(word) == 1 and word.lower() not in _COMMON_SINGLE_CHAR_WORDS
    )

    non_ascii = 0
    control = 0
    whitespace = 0
    for char in text:
        code = ord(char)
        if code > 127:
            non_ascii += 1
        if (code < 32 and code not in (9, 10, 13)) or code == 127:
            control += 1
        if _WHITESPACE_RE.match(char):
            whitespace += 1

    return TextMetrics(
        char_count=char_count,
        word_count=word_count,
        line_count=line_count,
        avg_chars_per_line=char_count / line_count,
        avg_word_length=avg_word_length,
        non_ascii_ratio=non_ascii / char_count,
        control_char_ratio=control / char_count,
        whitespace_ratio=whitespace / char_count,
        single_char_words=single_char_words,
        single_char_word_ratio=single_char_words / word_count if word_count else 0.0,
        repeated_sequences=len(_REPEATED_RUN_RE.findall(text)),
        ocr_error_patterns=sum(len(pattern.findall(text)) for pattern in _OCR_ERROR_PATTERNS),
    )


def _is_low_quality(m: TextMetrics) -> bool:
    return (
        m.whitespace_ratio > 0.7
        or m.control_char_ratio > 0.05
        or m.non_ascii_ratio > 0.2
        or (m.avg_word_length < 2.5 and m.word_count > 10)
        # fragmented: long text made of very few "words"
        or (m.char_count > 100 and m.word_count < 5)
    )


def _is_likely_ocr(m: TextMetrics) -> bool:
    if m.single_char_word_ratio > 0.25 and m.word_count > 20:
        return True
    if m.ocr_error_patterns > 10 and m.word_count > 10:
        return True
    return (
        m.avg_word_length < 2
        and m.single_char_word_ratio > 0.2
        and m.ocr_error_patterns > 5
        and m.word_count > 20
    )


def _is_mixed_quality(m: TextMetrics) -> bool:
    return (
        0.05 < m.non_ascii_ratio <= 0.2
        or 0.01 < m.control_char_ratio <= 0.05
        or (m.avg_chars_per_line < 25 and m.line_count > 20)
        or m.repeated_sequences > 5
        or 5 < m.ocr_error_patterns <= 10
    )


def describe_quality(quality: QualityHint) -> str:
    return _DESCRIPTIONS[QualityHint(quality)]


def is_quality_sufficient_for_text(quality: QualityHint) -> bool:
    """Text-only models should not rely on low or OCR-like extractions."""
    return quality in (QualityHint.good, QualityHint.mixed)


__all__ = [
    "TextMetrics",
    "assess_quality",
    "compute_metrics",
    "describe_quality",
    "is_quality_sufficient_for_text",
]
