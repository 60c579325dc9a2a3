"""Context assembly: sources, anchors, envelope, budget and rendering."""

from contextir.context.anchors import (
    AnchorError,
    InvalidAnchorFormat,
    InvalidAnchorLocation,
    MessageLocation,
    PageLocation,
    RegionLocation,
    SectionLocation,
    compute_source_id,
    create_anchor,
    get_source_id_from_anchor,
    is_valid_anchor,
    is_valid_source_id,
    parse_anchor,
    validate_source_id,
)
from contextir.context.budget import (
    apply_token_budget,
    extractive_summary,
    find_semantic_boundaries,
    truncate_at_boundary,
)
from contextir.context.envelope import (
    build_context_envelope,
    get_attachment_data,
    get_envelope_stats,
)
from contextir.context.quality import (
    assess_quality,
    describe_quality,
    is_quality_sufficient_for_text,
)
from contextir.context.query import (
    QueryContextResult,
    build_query_context,
    build_sources_from_extracted,
    default_tab_info,
    estimate_query_tokens,
)
from contextir.context.render import (
    render_attachments,
    render_chunk,
    render_chunks,
    render_context_index,
    render_envelope_as_text,
)
from contextir.context.sources import (
    build_source,
    build_sources,
    get_source_quality,
    get_source_text,
)

__all__ = [
    "AnchorError",
    "InvalidAnchorFormat",
    "InvalidAnchorLocation",
    "MessageLocation",
    "PageLocation",
    "QueryContextResult",
    "RegionLocation",
    "SectionLocation",
    "apply_token_budget",
    "assess_quality",
    "build_context_envelope",
    "build_query_context",
    "build_source",
    "build_sources",
    "build_sources_from_extracted",
    "default_tab_info",
    "compute_source_id",
    "create_anchor",
    "describe_quality",
    "estimate_query_tokens",
    "extractive_summary",
    "find_semantic_boundaries",
    "get_attachment_data",
    "get_envelope_stats",
    "get_source_id_from_anchor",
    "get_source_quality",
    "get_source_text",
    "is_quality_sufficient_for_text",
    "is_valid_anchor",
    "is_valid_source_id",
    "parse_anchor",
    "render_attachments",
    "render_chunk",
    "render_chunks",
    "render_context_index",
    "render_envelope_as_text",
    "truncate_at_boundary",
    "validate_source_id",
]
