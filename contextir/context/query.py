"""One-call context assembly for a user query.

Ties the pipeline together: extracted items become sources, sources become
an envelope, the budget ladder is applied when a ceiling is given and the
result is rendered to the text handed to the model provider.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass

from contextir.context.budget import apply_token_budget
from contextir.context.envelope import build_context_envelope, get_envelope_stats
from contextir.context.render import render_envelope_as_text
from contextir.context.sources import build_sources
from contextir.core.logging import correlation_scope
from contextir.models.envelope import (
    ContextEnvelope,
    EnvelopeOptions,
    EnvelopeStats,
    TokenBudgetOptions,
)
from contextir.models.extracted import ContextTabInfo, ExtractedContent
from contextir.models.sources import Source

logger = logging.getLogger(__name__)

_TAB_TYPES: dict[str, str] = {"html": "webpage", "pdf": "pdf", "image": "upload", "text": "notes"}


@dataclass(frozen=True, slots=True)
class QueryContextResult:
    text: str
    envelope: ContextEnvelope
    sources: list[Source]
    stats: EnvelopeStats


def default_tab_info(item: ExtractedContent, position: int) -> ContextTabInfo:
    """Tab info for an item captured without one: ``tab-<position>``, typed by content."""
    return ContextTabInfo(
        id=f"tab-{position}",
        title=item.title,
        url=item.url,
        type=_TAB_TYPES.get(item.type, "webpage"),
    )


def build_sources_from_extracted(
    extracted: Sequence[ExtractedContent],
    tab_infos: Sequence[ContextTabInfo] | None = None,
) -> list[Source]:
    """Build sources, synthesizing ``tab-<i>`` tab info where none is given."""
    tab_infos = tab_infos or []
    pairs = []
    for position, item in enumerate(extracted):
        if position < len(tab_infos):
            tab_info = tab_infos[position]
        else:
            tab_info = default_tab_info(item, position)
        pairs.append((item, tab_info))
    return build_sources(pairs)


def build_query_context(
    extracted: Sequence[ExtractedContent],
    tab_infos: Sequence[ContextTabInfo] | None,
    task: str,
    options: EnvelopeOptions | None = None,
    *,
    budget: TokenBudgetOptions | None = None,
) -> QueryContextResult:
    """Build, budget and render the context for one query.

    The degrade ladder runs when *budget* is given, or with default reserve
    and floor when only ``options.max_tokens`` is set.
    """
    options = options or EnvelopeOptions()
    if budget is None and options.max_tokens is not None:
        budget = TokenBudgetOptions(max_tokens=options.max_tokens)
    if budget is not None and options.max_tokens != budget.max_tokens:
        options = options.model_copy(update={"max_tokens": budget.max_tokens})

    query_id = uuid.uuid4().hex
    with correlation_scope(query_id=query_id):
        sources = build_sources_from_extracted(extracted, tab_infos)
        envelope = build_context_envelope(sources, task, options)
        if budget is not None:
            envelope = apply_token_budget(envelope, budget)
        stats = get_envelope_stats(envelope)
        logger.info(
            "assembled context: %d sources, %d chunks, %d tokens, stage %d",
            stats.source_count,
            stats.chunk_count,
            stats.total_tokens,
            envelope.budget.degrade_stage,
        )
        return QueryContextResult(
            text=render_envelope_as_text(envelope),
            envelope=envelope,
            sources=sources,
            stats=stats,
        )


def estimate_query_tokens(extracted: Sequence[ExtractedContent], task: str) -> int:
    """Tokens the unbudgeted envelope for *extracted* and *task* would use."""
    sources = build_sources_from_extracted(extracted)
    return build_context_envelope(sources, task).budget.used_tokens


__all__ = [
    "QueryContextResult",
    "build_query_context",
    "build_sources_from_extracted",
    "default_tab_info",
    "estimate_query_tokens",
]
