from __future__ import annotations

import pytest

from contextir.context.quality import (
    assess_quality,
    compute_metrics,
    describe_quality,
    is_quality_sufficient_for_text,
)
from contextir.models.sources import QualityHint

_PROSE = (
    "The committee reviewed the proposal in detail and agreed that the budget "
    "should be revisited next quarter. Several members noted that the timeline "
    "was ambitious but achievable, provided that the supporting teams receive "
    "the resources they asked for during the planning sessions earlier this year."
)


class TestAssessQuality:
    def test_empty_is_low(self) -> None:
        assert assess_quality("") == QualityHint.low

    def test_blank_is_low(self) -> None:
        assert assess_quality("   \n\t ") == QualityHint.low

    def test_none_is_low(self) -> None:
        assert assess_quality(None) == QualityHint.low

    def test_non_string_is_coerced(self) -> None:
        assert assess_quality(12345) == QualityHint.good

    def test_clean_prose_is_good(self) -> None:
        assert assess_quality(_PROSE) == QualityHint.good

    def test_single_char_words_are_ocr_like(self) -> None:
        text = " ".join("x y information" for _ in range(30))
        assert assess_quality(text) == QualityHint.ocr_like

    def test_whitespace_heavy_is_low(self) -> None:
        assert assess_quality("a" + " " * 100) == QualityHint.low

    def test_control_characters_are_low(self) -> None:
        assert assess_quality("abc\x00\x01\x02\x03 def") == QualityHint.low

    def test_mostly_non_ascii_is_low(self) -> None:
        assert assess_quality("日本語のテキストです") == QualityHint.low

    def test_long_unbroken_run_is_low(self) -> None:
        assert assess_quality("x" * 150) == QualityHint.low

    def test_some_non_ascii_is_mixed(self) -> None:
        text = "word " * 18 + "éé éé éé éé éé"
        assert assess_quality(text) == QualityHint.mixed

    def test_many_short_lines_are_mixed(self) -> None:
        text = "\n".join(f"short line number {i}" for i in range(25))
        assert assess_quality(text) == QualityHint.mixed


class TestComputeMetrics:
    def test_counts(self) -> None:
        metrics = compute_metrics("one two\n\nthree")
        assert metrics.word_count == 3
        assert metrics.line_count == 2
        assert metrics.char_count == 14

    def test_common_single_letters_not_counted(self) -> None:
        metrics = compute_metrics("I saw a cat and x")
        assert metrics.single_char_words == 1

    def test_repeated_sequences(self) -> None:
        assert compute_metrics("aaaa bbbbbb cc").repeated_sequences == 2

    def test_ocr_error_patterns(self) -> None:
        assert compute_metrics("l1 and |word and @#$%").ocr_error_patterns == 3


class TestDescribeQuality:
    @pytest.mark.parametrize(
        ("hint", "prefix"),
        [
            (QualityHint.good, "Good quality"),
            (QualityHint.mixed, "Mixed quality"),
            (QualityHint.low, "Low quality"),
            (QualityHint.ocr_like, "OCR-like quality"),
        ],
    )
    def test_descriptions(self, hint: QualityHint, prefix: str) -> None:
        assert describe_quality(hint).startswith(prefix)

    def test_sufficient_for_text(self) -> None:
        assert is_quality_sufficient_for_text(QualityHint.good) is True
        assert is_quality_sufficient_for_text(QualityHint.mixed) is True
        assert is_quality_sufficient_for_text(QualityHint.low) is False
        assert is_quality_sufficient_for_text(QualityHint.ocr_like) is False
