"""Tests for the token budget degrade ladder."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from contextir.context.budget import (
    TRUNCATION_SUFFIX,
    _keep_top_k,
    _summarize_low_ranked,
    _truncate_to_budget,
    apply_token_budget,
    extractive_summary,
    find_semantic_boundaries,
    truncate_at_boundary,
)
from contextir.context.envelope import build_context_envelope
from contextir.context.render import render_context_index
from contextir.core.token_counter import estimate_tokens
from contextir.models.envelope import (
    ContextChunk,
    ContextEnvelope,
    CutReason,
    CutType,
    TokenBudgetCut,
    TokenBudgetOptions,
)

from tests.helpers import blob, make_note, make_webpage, with_scores


def _base(envelope: ContextEnvelope, task_reserve: int) -> int:
    return (
        estimate_tokens(envelope.task)
        + estimate_tokens(render_context_index(envelope.index))
        + task_reserve
    )


def _cut(anchor: str, cut_type: CutType, reason: CutReason, tokens: int) -> TokenBudgetCut:
    return TokenBudgetCut(type=cut_type, anchor=anchor, original_tokens=tokens, reason=reason)


# ------------------------------------------------------------------
# Stage selection
# ------------------------------------------------------------------


class TestStageZero:
    def test_fits_unchanged(self) -> None:
        envelope = build_context_envelope([make_note("a", "Short content")], "Task")
        result = apply_token_budget(envelope, TokenBudgetOptions(max_tokens=10_000))
        assert result.budget.degrade_stage == 0
        assert result.budget.cuts == []
        assert result.chunks == envelope.chunks
        assert result.index == envelope.index
        assert result.budget.max_tokens == 10_000
        # task 1 + index 17 + reserve 500 + chunk 4
        assert result.budget.used_tokens == 522

    def test_input_envelope_untouched(self) -> None:
        envelope = build_context_envelope([make_note("a", "x" * 4000)], "Task")
        apply_token_budget(envelope, TokenBudgetOptions(max_tokens=50))
        assert len(envelope.chunks) == 1
        assert envelope.budget.degrade_stage == 0


class TestStageOne:
    def _envelope(self) -> ContextEnvelope:
        envelope = build_context_envelope(
            [make_note("a", "x" * 400), make_note("b", "y" * 400)], "Task"
        )
        return with_scores(envelope, [0.9, 0.1])

    def test_removes_low_ranked(self) -> None:
        # base = task 1 + index 28, content budget 150: one 100-token chunk fits
        options = TokenBudgetOptions(max_tokens=179, task_reserve=0, min_chunks=1)
        result = apply_token_budget(self._envelope(), options)

        assert result.budget.degrade_stage == 1
        assert [chunk.anchor for chunk in result.chunks] == ["src:a"]
        assert result.budget.cuts == [
            _cut("src:b", CutType.chunk_removed, CutReason.stage1_low_rank, 100)
        ]
        kept, dropped = result.index.entries
        assert kept.content_included is True
        assert kept.summary is None
        assert dropped.content_included is False
        assert dropped.summary == "y" * 150
        assert result.budget.used_tokens == 1 + estimate_tokens(render_context_index(result.index)) + 100
        assert result.budget.used_tokens <= 179

    def test_min_chunks_floor_keeps_both(self) -> None:
        envelope = with_scores(
            build_context_envelope([make_note("a", "Short"), make_note("b", "Also short")], "Task"),
            [0.9, 0.1],
        )
        result = apply_token_budget(envelope, TokenBudgetOptions(max_tokens=2000, min_chunks=2))
        assert len(result.chunks) == 2

    def test_higher_score_survives_regardless_of_order(self) -> None:
        envelope = with_scores(self._envelope(), [0.1, 0.9])
        options = TokenBudgetOptions(max_tokens=179, task_reserve=0, min_chunks=1)
        result = apply_token_budget(envelope, options)
        assert [chunk.anchor for chunk in result.chunks] == ["src:b"]


class TestStageTwo:
    def _chunks(self) -> list[ContextChunk]:
        long_text = (
            "First sentence here. Second sentence follows. Third comes next. " + "z" * 500
        )
        envelope = with_scores(
            build_context_envelope([make_note("a", "x" * 400), make_note("b", long_text)], "Task"),
            [0.9, 0.1],
        )
        return envelope.chunks

    def test_summarizes_chunk_beyond_floor(self) -> None:
        result = _summarize_low_ranked(self._chunks(), budget=150, min_chunks=1)
        assert result.fits
        kept, summarized = result.chunks
        assert kept.anchor == "src:a"
        assert summarized.truncated is True
        assert summarized.content.startswith(
            "First sentence here. Second sentence follows. Third comes next."
        )
        assert summarized.content.endswith("[extractive summary, see src:b for full content]")
        assert summarized.token_count == estimate_tokens(summarized.content)
        assert result.cuts == [_cut("src:b", CutType.summarized, CutReason.stage2_extractive, 141)]

    def test_drops_when_summary_does_not_fit(self) -> None:
        result = _summarize_low_ranked(self._chunks(), budget=110, min_chunks=1)
        assert [chunk.anchor for chunk in result.chunks] == ["src:a"]
        assert result.cuts == [_cut("src:b", CutType.chunk_removed, CutReason.stage2_no_fit, 141)]


class TestStageThree:
    def _envelope(self) -> ContextEnvelope:
        return with_scores(
            build_context_envelope(
                [
                    make_note("a", "a" * 40),
                    make_note("b", "b" * 400),
                    make_note("c", "c" * 600),
                ],
                "Task",
            ),
            [0.9, 0.5, 0.1],
        )

    def test_reached_when_index_summaries_overflow(self) -> None:
        # Stage 1 keeps a and b (110 of 120 content tokens), but c's summary
        # grows the index to 77 tokens and the total to 188. Keeping only the
        # top chunk leaves 1 + 114 + 10.
        options = TokenBudgetOptions(max_tokens=160, task_reserve=0, min_chunks=1)
        result = apply_token_budget(self._envelope(), options)

        assert result.budget.degrade_stage == 3
        assert [chunk.anchor for chunk in result.chunks] == ["src:a"]
        assert result.budget.cuts == [
            _cut("src:c", CutType.chunk_removed, CutReason.stage1_low_rank, 150),
            _cut("src:b", CutType.chunk_removed, CutReason.stage3_topk, 100),
        ]
        assert [entry.summary for entry in result.index.entries] == [None, "b" * 150, "c" * 150]
        assert result.budget.used_tokens == 125
        assert result.budget.used_tokens <= options.max_tokens

    def test_keep_top_k_keeps_at_least_one(self) -> None:
        result = _keep_top_k(self._envelope().chunks, budget=1000, min_chunks=0)
        assert [chunk.anchor for chunk in result.chunks] == ["src:a"]
        assert [cut.anchor for cut in result.cuts] == ["src:b", "src:c"]
        assert all(cut.reason == CutReason.stage3_topk for cut in result.cuts)

    def test_keep_top_k_ranks_by_score(self) -> None:
        envelope = with_scores(self._envelope(), [0.1, 0.2, 0.8])
        result = _keep_top_k(envelope.chunks, budget=1000, min_chunks=2)
        assert [chunk.anchor for chunk in result.chunks] == ["src:c", "src:b"]
        assert result.cuts == [
            _cut("src:a", CutType.chunk_removed, CutReason.stage3_topk, 10)
        ]


class TestStageFour:
    def test_compounds_on_earlier_stages(self) -> None:
        # Stage 1 keeps "a" (floor) and drops "b"; stages 2 and 3 cannot
        # shrink "a" further, so stage 4 truncates it.
        envelope = with_scores(
            build_context_envelope(
                [make_note("a", "A" * 800), make_note("b", "B. " * 133 + "B")], "Task"
            ),
            [0.9, 0.1],
        )
        options = TokenBudgetOptions(max_tokens=179, task_reserve=0, min_chunks=1)
        result = apply_token_budget(envelope, options)

        assert result.budget.degrade_stage == 4
        (chunk,) = result.chunks
        assert chunk.anchor == "src:a"
        assert chunk.truncated is True
        assert chunk.content.endswith("... [truncated]")
        assert result.budget.cuts == [
            _cut("src:b", CutType.chunk_removed, CutReason.stage1_low_rank, 100),
            _cut("src:a", CutType.chunk_truncated, CutReason.stage4_boundary, 200),
        ]
        assert result.index.entries[1].summary == "B. B"
        assert result.budget.used_tokens == 179

    def test_drops_everything_after_truncated_chunk(self) -> None:
        sources = [
            make_note("a", "a" * 400),
            make_note("b", "b" * 100 + "\n\n" + "b" * 298),
            make_note("c", "c" * 40),
        ]
        envelope = build_context_envelope(sources, "Task")
        # base = task 1 + index 39, content budget 150
        result = apply_token_budget(envelope, TokenBudgetOptions(max_tokens=190, task_reserve=0))

        assert result.budget.degrade_stage == 4
        assert [chunk.anchor for chunk in result.chunks] == ["src:a", "src:b"]
        assert result.chunks[1].content == "b" * 100 + "... [truncated]"
        # "c" would fit after the cut at the paragraph break but is still dropped
        assert result.budget.cuts == [
            _cut("src:b", CutType.chunk_truncated, CutReason.stage4_boundary, 100),
            _cut("src:c", CutType.chunk_removed, CutReason.stage4_budget, 10),
        ]
        excluded = result.index.entries[2]
        assert excluded.content_included is False
        assert excluded.summary == "c" * 40
        assert result.budget.used_tokens <= 190

    def test_chunk_dropped_when_marker_cannot_fit(self) -> None:
        chunks = build_context_envelope(
            [make_note("a", "x" * 40), make_note("b", "y" * 400)], "Task"
        ).chunks
        result = _truncate_to_budget(chunks, budget=12)
        assert [chunk.anchor for chunk in result.chunks] == ["src:a"]
        assert result.cuts == [_cut("src:b", CutType.chunk_removed, CutReason.stage4_budget, 100)]
        assert result.fits

    def test_chunk_truncated_when_marker_fits(self) -> None:
        chunks = build_context_envelope(
            [make_note("a", "x" * 40), make_note("b", "y" * 400)], "Task"
        ).chunks
        result = _truncate_to_budget(chunks, budget=14)
        assert [chunk.content for chunk in result.chunks] == ["x" * 40, "y" + TRUNCATION_SUFFIX]
        assert result.cuts == [
            _cut("src:b", CutType.chunk_truncated, CutReason.stage4_boundary, 100)
        ]
        assert result.fits

    def test_small_remainder_keeps_fitting_chunks(self) -> None:
        # Content budget 12 leaves 2 tokens after "a", too few for the marker.
        envelope = build_context_envelope(
            [make_note("a", "a" * 40), make_note("b", "B. " * 133 + "B")], "Task"
        )
        result = apply_token_budget(
            envelope, TokenBudgetOptions(max_tokens=41, task_reserve=0, min_chunks=2)
        )
        assert result.budget.degrade_stage == 4
        assert [chunk.anchor for chunk in result.chunks] == ["src:a"]
        assert result.budget.cuts == [
            _cut("src:b", CutType.chunk_removed, CutReason.stage4_budget, 100)
        ]
        assert result.budget.used_tokens == 40

    def test_truncated_chunk_renders_marker(self) -> None:
        long_text = (
            "# Heading One\n\nParagraph one content here.\n\n"
            "## Heading Two\n\nParagraph two content here.\n\n"
            "### Heading Three\n\n" + "x" * 2000
        )
        envelope = build_context_envelope([make_note("a", long_text)], "Task")
        result = apply_token_budget(envelope, TokenBudgetOptions(max_tokens=600))
        assert result.budget.degrade_stage == 4
        assert result.chunks[0].truncated is True
        assert "[truncated]" in result.chunks[0].content


class TestStageFive:
    def test_no_room_for_content(self) -> None:
        envelope = build_context_envelope(
            [make_webpage("a", "x" * 5000, screenshot=blob())], "Task"
        )
        result = apply_token_budget(envelope, TokenBudgetOptions(max_tokens=50))

        assert result.budget.degrade_stage == 5
        assert result.chunks == []
        assert result.attachments
        assert all(not attachment.included for attachment in result.attachments)
        assert result.budget.cuts == [
            _cut("src:a", CutType.chunk_removed, CutReason.stage5_minimal, 1250)
        ]
        (entry,) = result.index.entries
        assert entry.content_included is False
        assert entry.summary == "x" * 150
        assert result.budget.used_tokens == _base(result, 500)

    def test_zero_max_tokens(self) -> None:
        envelope = build_context_envelope([make_note("a", "Content")], "Task")
        result = apply_token_budget(envelope, TokenBudgetOptions(max_tokens=0))
        assert result.budget.degrade_stage == 5
        assert result.budget.max_tokens == 0
        assert result.chunks == []

    def test_summary_is_two_sentences(self) -> None:
        text = "First sentence. Second sentence. Content continues here."
        envelope = build_context_envelope([make_note("a", text)], "Task")
        result = apply_token_budget(envelope, TokenBudgetOptions(max_tokens=80))
        assert result.budget.degrade_stage == 5
        assert result.index.entries[0].summary == "First sentence. Second sentence"

    def test_source_without_chunks_has_no_summary(self) -> None:
        envelope = build_context_envelope([make_note("a", "")], "Task")
        result = apply_token_budget(envelope, TokenBudgetOptions(max_tokens=10))
        assert result.index.entries[0].summary is None

    def test_fallthrough_keeps_earlier_cuts(self) -> None:
        envelope = with_scores(
            build_context_envelope(
                [make_note("a", "x" * 400), make_note("b", "y" * 400)], "Task"
            ),
            [0.9, 0.1],
        )
        # content budget of 3 tokens cannot hold even the truncation marker
        result = apply_token_budget(
            envelope, TokenBudgetOptions(max_tokens=32, task_reserve=0, min_chunks=1)
        )
        assert result.budget.degrade_stage == 5
        assert result.budget.cuts == [
            _cut("src:b", CutType.chunk_removed, CutReason.stage1_low_rank, 100),
            _cut("src:a", CutType.chunk_removed, CutReason.stage5_minimal, 100),
        ]


# ------------------------------------------------------------------
# Ladder properties
# ------------------------------------------------------------------


class TestLadderProperties:
    def _envelope(self) -> ContextEnvelope:
        sources = [
            make_note("a", "Alpha paragraph one.\n\n" + "alpha " * 120),
            make_webpage("b", "# Beta\n\nBeta body text. " * 30, screenshot=blob()),
            make_note("c", "Gamma is short."),
            make_note("d", "Delta sentence one. Delta sentence two. " * 10),
        ]
        return with_scores(build_context_envelope(sources, "Compare these"), [0.4, 0.9, 0.1, 0.6])

    @pytest.mark.parametrize("max_tokens", range(0, 1600, 37))
    def test_finalized_stage_never_exceeds_budget(self, max_tokens: int) -> None:
        envelope = self._envelope()
        options = TokenBudgetOptions(max_tokens=max_tokens, min_chunks=1)
        result = apply_token_budget(envelope, options)
        if result.budget.degrade_stage < 5:
            chunk_tokens = sum(chunk.token_count for chunk in result.chunks)
            assert _base(envelope, options.task_reserve) + chunk_tokens <= max_tokens
            assert result.budget.used_tokens <= max_tokens
            assert result.budget.used_tokens == _base(result, options.task_reserve) + chunk_tokens

    @pytest.mark.parametrize("max_tokens", range(600, 1600, 53))
    def test_idempotent_once_satisfied(self, max_tokens: int) -> None:
        options = TokenBudgetOptions(max_tokens=max_tokens, min_chunks=1)
        first = apply_token_budget(self._envelope(), options)
        if first.budget.degrade_stage == 5:
            return
        again = apply_token_budget(
            first,
            TokenBudgetOptions(max_tokens=first.budget.used_tokens, min_chunks=1),
        )
        assert again.budget.degrade_stage == 0
        assert again.chunks == first.chunks
        assert again.index == first.index
        assert again.budget.used_tokens == first.budget.used_tokens

    def test_index_survives_every_stage(self) -> None:
        envelope = self._envelope()
        for max_tokens in (0, 400, 700, 5000):
            result = apply_token_budget(envelope, TokenBudgetOptions(max_tokens=max_tokens))
            assert [e.source_id for e in result.index.entries] == [
                e.source_id for e in envelope.index.entries
            ]

    def test_negative_max_tokens_rejected(self) -> None:
        with pytest.raises(ValidationError):
            TokenBudgetOptions(max_tokens=-1)


# ------------------------------------------------------------------
# Text reduction helpers
# ------------------------------------------------------------------


class TestExtractiveSummary:
    def test_first_three_sentences(self) -> None:
        content = (
            "First sentence here. Second sentence follows. Third is here. "
            "Fourth should not appear."
        )
        assert extractive_summary(content, "src:test") == (
            "First sentence here. Second sentence follows. Third is here. "
            "[extractive summary, see src:test for full content]"
        )

    def test_empty_content(self) -> None:
        assert extractive_summary("", "src:empty") == "[see src:empty for content]"

    def test_short_sentences_are_skipped(self) -> None:
        assert extractive_summary("Hi. Ok. Yes.", "src:a") == "[see src:a for content]"

    def test_long_summary_is_capped(self) -> None:
        result = extractive_summary("x" * 500 + ".", "src:long")
        assert result == "x" * 300 + "... [extractive summary, see src:long for full content]"

    def test_no_sentence_boundaries(self) -> None:
        result = extractive_summary("Just some text without punctuation", "src:nopunc")
        assert result.startswith("Just some text without punctuation")
        assert "src:nopunc" in result


class TestSemanticBoundaries:
    def test_start_and_end_always_present(self) -> None:
        text = "No special markers here"
        assert find_semantic_boundaries(text) == [0, len(text)]

    def test_paragraph_breaks(self) -> None:
        assert find_semantic_boundaries("Para 1\n\nPara 2") == [0, 6, 14]

    def test_headings(self) -> None:
        text = "Intro\n# Heading 1\nContent\n## Heading 2\nMore"
        boundaries = find_semantic_boundaries(text)
        assert 5 in boundaries
        assert text.index("\n## ") in boundaries

    def test_page_markers_and_rules(self) -> None:
        assert 14 in find_semantic_boundaries("Page 1 content\n[Page 2]\nPage 2 content")
        assert 7 in find_semantic_boundaries("Before\n---\nAfter")

    def test_deduplicated_and_sorted(self) -> None:
        boundaries = find_semantic_boundaries("\n\n\n\n")
        assert boundaries == sorted(set(boundaries))


class TestTruncateAtBoundary:
    def test_within_limit_unchanged(self) -> None:
        assert truncate_at_boundary("Short text", 100) == "Short text"

    def test_hard_cut(self) -> None:
        result = truncate_at_boundary("A" * 1000, 100)
        assert len(result) <= 103
        assert result.endswith("... [truncated]")

    def test_paragraph_boundary(self) -> None:
        intro = "Intro paragraph that is fairly short."
        result = truncate_at_boundary(intro + "\n\n" + "word " * 40, 60)
        assert result == intro + "... [truncated]"

    def test_word_boundary_fallback(self) -> None:
        result = truncate_at_boundary("word " * 50, 50)
        assert result == " ".join(["word"] * 7) + "... [truncated]"
        assert len(result) <= 50

    def test_allowance_below_marker_returns_marker(self) -> None:
        assert truncate_at_boundary("A" * 100, 10) == TRUNCATION_SUFFIX
