from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from contextir.models.extracted import utc_now
from contextir.models.sources import QualityHint, Source, SourceKind

ENVELOPE_VERSION = "1.0"


class ArtifactType(StrEnum):
    text = "text"
    page_image = "page_image"
    screenshot = "screenshot"
    thumbnail = "thumbnail"
    raw_image = "raw_image"
    raw_pdf = "raw_pdf"
    table_json = "table_json"


class CutType(StrEnum):
    chunk_removed = "chunk_removed"
    chunk_truncated = "chunk_truncated"
    attachment_removed = "attachment_removed"
    summarized = "summarized"


class CutReason(StrEnum):
    stage1_low_rank = "stage1_low_rank"
    stage2_extractive = "stage2_extractive"
    stage2_no_fit = "stage2_no_fit"
    stage3_topk = "stage3_topk"
    stage4_boundary = "stage4_boundary"
    stage4_budget = "stage4_budget"
    stage5_minimal = "stage5_minimal"


class ContextIndexEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_id: str
    title: str
    url: str | None = None
    source_type: SourceKind
    pages_attached: list[int] | None = None
    summary: str | None = None
    content_included: bool = True


class ContextIndex(BaseModel):
    """Index of every source; survives all degrade stages."""

    model_config = ConfigDict(frozen=True)

    entries: list[ContextIndexEntry] = Field(default_factory=list)


class ContextChunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    anchor: str
    source_id: str
    source_type: SourceKind
    title: str
    url: str | None = None
    extraction_method: str
    quality: QualityHint | None = None
    content: str
    token_count: int = Field(ge=0)
    relevance_score: float | None = None
    truncated: bool = False


class Dimensions(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int
    height: int


class AttachmentManifest(BaseModel):
    model_config = ConfigDict(frozen=True)

    anchor: str
    source_id: str
    artifact_type: ArtifactType
    mime_type: str
    byte_size: int = Field(ge=0)
    dimensions: Dimensions | None = None
    transform: str | None = None
    included: bool = True


class TokenBudgetCut(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: CutType
    anchor: str
    original_tokens: int
    reason: CutReason


class TokenBudgetState(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_tokens: int = Field(default=0, ge=0)
    """0 means the envelope was built without a ceiling."""
    used_tokens: int = Field(default=0, ge=0)
    degrade_stage: Literal[0, 1, 2, 3, 4, 5] = 0
    cuts: list[TokenBudgetCut] = Field(default_factory=list)


class ContextEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: Literal["1.0"] = ENVELOPE_VERSION
    created_at: datetime = Field(default_factory=utc_now)
    sources: list[Source] = Field(default_factory=list)
    index: ContextIndex = Field(default_factory=ContextIndex)
    chunks: list[ContextChunk] = Field(default_factory=list)
    attachments: list[AttachmentManifest] = Field(default_factory=list)
    budget: TokenBudgetState = Field(default_factory=TokenBudgetState)
    task: str

    @field_validator("created_at")
    @classmethod
    def _ensure_timezone_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            raise ValueError("created_at must be timezone-aware")
        return value


class EnvelopeOptions(BaseModel):
    max_tokens: int | None = Field(default=None, ge=0)
    include_attachments: bool = True


class TokenBudgetOptions(BaseModel):
    max_tokens: int = Field(ge=0)
    task_reserve: int = Field(default=500, ge=0)
    min_chunks: int = Field(default=3, ge=0)


class EnvelopeStats(BaseModel):
    source_count: int
    chunk_count: int
    attachment_count: int
    total_tokens: int
    sources_by_type: dict[SourceKind, int]


__all__ = [
    "ENVELOPE_VERSION",
    "ArtifactType",
    "AttachmentManifest",
    "ContextChunk",
    "ContextEnvelope",
    "ContextIndex",
    "ContextIndexEntry",
    "CutReason",
    "CutType",
    "Dimensions",
    "EnvelopeOptions",
    "EnvelopeStats",
    "TokenBudgetCut",
    "TokenBudgetOptions",
    "TokenBudgetState",
]
