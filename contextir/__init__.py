"""Assemble captured content into a citable, token-budgeted context for LLM queries."""

from contextir.context import (
    QueryContextResult,
    apply_token_budget,
    build_context_envelope,
    build_query_context,
    build_source,
    build_sources,
    compute_source_id,
    create_anchor,
    get_attachment_data,
    parse_anchor,
    render_envelope_as_text,
)
from contextir.models import (
    ContextEnvelope,
    ContextTabInfo,
    EnvelopeOptions,
    ExtractedContent,
    Source,
    TokenBudgetOptions,
)

__version__ = "0.1.0"

__all__ = [
    "ContextEnvelope",
    "ContextTabInfo",
    "EnvelopeOptions",
    "ExtractedContent",
    "QueryContextResult",
    "Source",
    "TokenBudgetOptions",
    "__version__",
    "apply_token_budget",
    "build_context_envelope",
    "build_query_context",
    "build_source",
    "build_sources",
    "compute_source_id",
    "create_anchor",
    "get_attachment_data",
    "parse_anchor",
    "render_envelope_as_text",
]
