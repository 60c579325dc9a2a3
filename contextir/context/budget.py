"""Token budget enforcement: the six-stage degrade ladder.

Stages, each more aggressive than the last:

    0  full content
    1  drop low-ranked chunks
    2  replace low-ranked chunks with extractive summaries
    3  keep only the top-k chunks
    4  hard-truncate at a semantic boundary
    5  context index and task only

Stages 1-4 compound: each one works on the chunks that survived the stage
before it, and cuts from every stage tried are kept on the result. The
first stage whose result fits the budget is finalized. Stage 5 always
succeeds, so the ladder is total.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from contextir.context.render import render_context_index
from contextir.core.token_counter import CHARS_PER_TOKEN, estimate_tokens
from contextir.models.envelope import (
    ContextChunk,
    ContextEnvelope,
    ContextIndex,
    CutReason,
    CutType,
    TokenBudgetCut,
    TokenBudgetOptions,
    TokenBudgetState,
)

logger = logging.getLogger(__name__)

TRUNCATION_SUFFIX = "... [truncated]"
SUMMARY_MAX_SENTENCES = 3
SUMMARY_MAX_CHARS = 300
INDEX_SUMMARY_MAX_SENTENCES = 2
INDEX_SUMMARY_MAX_CHARS = 150

_SENTENCE_END_RE = re.compile(r"(?<=[.!?])\s+")
_INDEX_SENTENCE_RE = re.compile(r"[.!?]+\s+")
_BOUNDARY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\n#{1,6}\s+"),  # markdown heading
    re.compile(r"\n\n+"),  # paragraph break
    re.compile(r"---+\n"),  # horizontal rule
    re.compile(r"\n\[Page \d+\]", re.IGNORECASE),  # page marker
    re.compile(r"\n(?=[A-Z][^.!?]{20,})"),  # line opening a capitalized sentence
)


@dataclass(slots=True)
class _StageResult:
    chunks: list[ContextChunk]
    budget: int
    cuts: list[TokenBudgetCut] = field(default_factory=list)

    @property
    def tokens(self) -> int:
        return _count_tokens(self.chunks)

    @property
    def fits(self) -> bool:
        return self.tokens <= self.budget


def apply_token_budget(envelope: ContextEnvelope, options: TokenBudgetOptions) -> ContextEnvelope:
    """Return a copy of *envelope* degraded until it fits ``options.max_tokens``.

    ``task_reserve`` tokens are held back for the model's answer and
    ``min_chunks`` is the floor stages 1-3 keep regardless of budget.
    The input envelope is never modified.
    """
    max_tokens = options.max_tokens
    base_tokens = _base_tokens(envelope, envelope.index, options.task_reserve)
    content_budget = max_tokens - base_tokens
    total_chunk_tokens = _count_tokens(envelope.chunks)
    logger.debug(
        "budget: max=%d base=%d content_budget=%d chunk_tokens=%d",
        max_tokens,
        base_tokens,
        content_budget,
        total_chunk_tokens,
    )

    if content_budget <= 0:
        logger.debug("no room for content, going straight to stage 5")
        return _minimal(envelope, envelope.chunks, [], options)

    if total_chunk_tokens <= content_budget:
        return envelope.model_copy(
            update={
                "budget": TokenBudgetState(
                    max_tokens=max_tokens,
                    used_tokens=base_tokens + total_chunk_tokens,
                    degrade_stage=0,
                )
            }
        )

    cuts: list[TokenBudgetCut] = []
    chunks = list(envelope.chunks)
    stages = (
        (1, lambda c: _remove_low_ranked(c, content_budget, options.min_chunks)),
        (2, lambda c: _summarize_low_ranked(c, content_budget, options.min_chunks)),
        (3, lambda c: _keep_top_k(c, content_budget, options.min_chunks)),
    )
    for stage, run in stages:
        result: _StageResult = run(chunks)
        cuts.extend(result.cuts)
        chunks = result.chunks
        _log_stage(stage, result)
        if not result.fits:
            continue

        finalized = _finalize(envelope, chunks, cuts, stage, options)
        if finalized.budget.used_tokens <= max_tokens:
            return _accepted(finalized)
        logger.debug("stage %d index summaries overflow the budget", stage)

    # Excluded sources carry summaries that enlarge the index, so stage 4
    # shrinks its own allowance by any overflow until the whole prompt fits.
    budget = content_budget
    result = _truncate_to_budget(chunks, budget)
    while True:
        _log_stage(4, result)
        if not result.fits or not result.chunks:
            break
        finalized = _finalize(envelope, result.chunks, [*cuts, *result.cuts], 4, options)
        overflow = finalized.budget.used_tokens - max_tokens
        if overflow <= 0:
            return _accepted(finalized)
        budget -= overflow
        if budget <= 0:
            break
        logger.debug("stage 4 overflows by %d tokens, retrying with %d", overflow, budget)
        result = _truncate_to_budget(chunks, budget)

    # The failed truncation is discarded; stage 5 removes what stage 3 kept.
    return _minimal(envelope, chunks, cuts, options)


def _log_stage(stage: int, result: _StageResult) -> None:
    logger.debug(
        "stage %d: %d chunks, %d/%d tokens, %d new cuts",
        stage,
        len(result.chunks),
        result.tokens,
        result.budget,
        len(result.cuts),
    )


def _accepted(envelope: ContextEnvelope) -> ContextEnvelope:
    budget = envelope.budget
    logger.info(
        "degraded context to stage %d: %d/%d tokens, %d cuts",
        budget.degrade_stage,
        budget.used_tokens,
        budget.max_tokens,
        len(budget.cuts),
    )
    return envelope


def _base_tokens(envelope: ContextEnvelope, index: ContextIndex, task_reserve: int) -> int:
    return estimate_tokens(envelope.task) + estimate_tokens(render_context_index(index)) + task_reserve


def _count_tokens(chunks: Sequence[ContextChunk]) -> int:
    return sum(chunk.token_count for chunk in chunks)


def _by_relevance(chunks: Sequence[ContextChunk]) -> list[ContextChunk]:
    # sorted() is stable with reverse=True, so ties keep envelope order
    return sorted(
        chunks,
        key=lambda chunk: chunk.relevance_score if chunk.relevance_score is not None else 0.0,
        reverse=True,
    )


def _cut(chunk: ContextChunk, cut_type: CutType, reason: CutReason) -> TokenBudgetCut:
    return TokenBudgetCut(
        type=cut_type,
        anchor=chunk.anchor,
        original_tokens=chunk.token_count,
        reason=reason,
    )


# ----------------------------------------------------------------------
# Stages
# ----------------------------------------------------------------------


def _remove_low_ranked(chunks: Sequence[ContextChunk], budget: int, min_chunks: int) -> _StageResult:
    result = _StageResult(chunks=[], budget=budget)
    tokens = 0
    for chunk in _by_relevance(chunks):
        if tokens + chunk.token_count <= budget or len(result.chunks) < min_chunks:
            result.chunks.append(chunk)
            tokens += chunk.token_count
        else:
            result.cuts.append(_cut(chunk, CutType.chunk_removed, CutReason.stage1_low_rank))
    return result


def _summarize_low_ranked(
    chunks: Sequence[ContextChunk], budget: int, min_chunks: int
) -> _StageResult:
    result = _StageResult(chunks=[], budget=budget)
    tokens = 0
    for chunk in _by_relevance(chunks):
        if tokens + chunk.token_count <= budget or len(result.chunks) < min_chunks:
            result.chunks.append(chunk)
            tokens += chunk.token_count
            continue

        summary = extractive_summary(chunk.content, chunk.anchor)
        summary_tokens = estimate_tokens(summary)
        if tokens + summary_tokens <= budget:
            result.chunks.append(
                chunk.model_copy(
                    update={"content": summary, "token_count": summary_tokens, "truncated": True}
                )
            )
            tokens += summary_tokens
            result.cuts.append(_cut(chunk, CutType.summarized, CutReason.stage2_extractive))
        else:
            result.cuts.append(_cut(chunk, CutType.chunk_removed, CutReason.stage2_no_fit))
    return result


def _keep_top_k(chunks: Sequence[ContextChunk], budget: int, min_chunks: int) -> _StageResult:
    top_k = max(min_chunks, 1)
    ranked = _by_relevance(chunks)
    return _StageResult(
        chunks=ranked[:top_k],
        budget=budget,
        cuts=[_cut(chunk, CutType.chunk_removed, CutReason.stage3_topk) for chunk in ranked[top_k:]],
    )


def _truncate_to_budget(chunks: Sequence[ContextChunk], budget: int) -> _StageResult:
    result = _StageResult(chunks=[], budget=budget)
    tokens = 0
    exhausted = False
    for chunk in chunks:
        if exhausted or tokens >= budget:
            result.cuts.append(_cut(chunk, CutType.chunk_removed, CutReason.stage4_budget))
            continue

        remaining = budget - tokens
        if chunk.token_count <= remaining:
            result.chunks.append(chunk)
            tokens += chunk.token_count
            continue

        if remaining * CHARS_PER_TOKEN < len(TRUNCATION_SUFFIX):
            result.cuts.append(_cut(chunk, CutType.chunk_removed, CutReason.stage4_budget))
            exhausted = True
            continue

        truncated = truncate_at_boundary(chunk.content, remaining * CHARS_PER_TOKEN)
        truncated_tokens = estimate_tokens(truncated)
        result.chunks.append(
            chunk.model_copy(
                update={"content": truncated, "token_count": truncated_tokens, "truncated": True}
            )
        )
        tokens += truncated_tokens
        result.cuts.append(_cut(chunk, CutType.chunk_truncated, CutReason.stage4_boundary))
        exhausted = True
    return result


# ----------------------------------------------------------------------
# Finalization
# ----------------------------------------------------------------------


def _finalize(
    envelope: ContextEnvelope,
    chunks: list[ContextChunk],
    cuts: list[TokenBudgetCut],
    stage: int,
    options: TokenBudgetOptions,
) -> ContextEnvelope:
    """Build the stage result; ``used_tokens`` is measured on the summarized index."""
    included = {chunk.source_id for chunk in chunks}
    index = ContextIndex(
        entries=[
            entry.model_copy(
                update={
                    "content_included": entry.source_id in included,
                    "summary": None
                    if entry.source_id in included
                    else _source_summary(envelope, entry.source_id),
                }
            )
            for entry in envelope.index.entries
        ]
    )
    used_tokens = _base_tokens(envelope, index, options.task_reserve) + _count_tokens(chunks)
    return envelope.model_copy(
        update={
            "chunks": chunks,
            "index": index,
            "budget": TokenBudgetState(
                max_tokens=options.max_tokens,
                used_tokens=used_tokens,
                degrade_stage=stage,
                cuts=list(cuts),
            ),
        }
    )


def _minimal(
    envelope: ContextEnvelope,
    remaining: Sequence[ContextChunk],
    cuts: list[TokenBudgetCut],
    options: TokenBudgetOptions,
) -> ContextEnvelope:
    """Stage 5: drop every chunk and attachment, keep a summarized index."""
    index = ContextIndex(
        entries=[
            entry.model_copy(
                update={
                    "content_included": False,
                    "summary": _source_summary(envelope, entry.source_id),
                }
            )
            for entry in envelope.index.entries
        ]
    )
    all_cuts = [
        *cuts,
        *(_cut(chunk, CutType.chunk_removed, CutReason.stage5_minimal) for chunk in remaining),
    ]
    used_tokens = _base_tokens(envelope, index, options.task_reserve)
    logger.info(
        "degraded context to stage 5: %d/%d tokens, %d cuts",
        used_tokens,
        options.max_tokens,
        len(all_cuts),
    )
    return envelope.model_copy(
        update={
            "chunks": [],
            "attachments": [
                attachment.model_copy(update={"included": False})
                for attachment in envelope.attachments
            ],
            "index": index,
            "budget": TokenBudgetState(
                max_tokens=options.max_tokens,
                used_tokens=used_tokens,
                degrade_stage=5,
                cuts=all_cuts,
            ),
        }
    )


def _source_summary(envelope: ContextEnvelope, source_id: str) -> str | None:
    """First two sentences of the source's first chunk, at most 150 chars."""
    chunk = next((c for c in envelope.chunks if c.source_id == source_id), None)
    if chunk is None:
        return None
    sentences = _INDEX_SENTENCE_RE.split(chunk.content)[:INDEX_SUMMARY_MAX_SENTENCES]
    return ". ".join(sentences)[:INDEX_SUMMARY_MAX_CHARS] or None


# ----------------------------------------------------------------------
# Text reduction helpers
# ----------------------------------------------------------------------


def extractive_summary(content: str, anchor: str) -> str:
    """Leading sentences of *content* with a pointer back to *anchor*.

    Takes up to three sentences longer than ten characters and caps the
    result at 300 characters. No model call is involved.
    """
    sentences = [s for s in _SENTENCE_END_RE.split(content) if len(s.strip()) > 10]
    summary = " ".join(sentences[:SUMMARY_MAX_SENTENCES]).strip()
    if not summary:
        return f"[see {anchor} for content]"
    if len(summary) > SUMMARY_MAX_CHARS:
        summary = summary[:SUMMARY_MAX_CHARS] + "..."
    return f"{summary} [extractive summary, see {anchor} for full content]"


def find_semantic_boundaries(text: str) -> list[int]:
    """Sorted, de-duplicated offsets where *text* can be cut cleanly.

    Always includes ``0`` and ``len(text)``.
    """
    boundaries = {0, len(text)}
    for pattern in _BOUNDARY_PATTERNS:
        boundaries.update(match.start() for match in pattern.finditer(text))
    return sorted(boundaries)


def truncate_at_boundary(text: str, max_chars: int) -> str:
    """Cut *text* to fit *max_chars*, preferring a semantic boundary.

    The ``"... [truncated]"`` marker counts toward *max_chars*; below the
    marker's own length only the marker is returned. If the best boundary
    keeps less than half the allowance, the last space past the halfway
    point is used instead, and failing that a hard cut.
    """
    if len(text) <= max_chars:
        return text

    limit = max(max_chars - len(TRUNCATION_SUFFIX), 0)
    best = 0
    for boundary in find_semantic_boundaries(text):
        if boundary > limit:
            break
        best = boundary

    if best < limit * 0.5:
        word_boundary = text.rfind(" ", 0, limit + 1)
        if word_boundary > limit * 0.5:
            best = word_boundary
    if best == 0:
        best = limit
    return text[:best].strip() + TRUNCATION_SUFFIX


__all__ = [
    "TRUNCATION_SUFFIX",
    "apply_token_budget",
    "extractive_summary",
    "find_semantic_boundaries",
    "truncate_at_boundary",
]
