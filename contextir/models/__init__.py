from __future__ import annotations

from contextir.models.envelope import (
    ENVELOPE_VERSION,
    ArtifactType,
    AttachmentManifest,
    ContextChunk,
    ContextEnvelope,
    ContextIndex,
    ContextIndexEntry,
    CutReason,
    CutType,
    Dimensions,
    EnvelopeOptions,
    EnvelopeStats,
    TokenBudgetCut,
    TokenBudgetOptions,
    TokenBudgetState,
)
from contextir.models.extracted import (
    ContextTabInfo,
    ExtractedContent,
    ImageData,
    PdfContent,
    PdfPageImage,
    SerializedDOM,
    utc_now,
)
from contextir.models.sources import (
    AnchorLocation,
    BinaryBlob,
    ChatlogMessage,
    ChatlogSource,
    ImageSource,
    LocationType,
    NoteSource,
    ParsedAnchor,
    PdfPage,
    PdfSource,
    QualityHint,
    Source,
    SourceKind,
    WebpageSource,
)

__all__ = [
    "ENVELOPE_VERSION",
    "AnchorLocation",
    "ArtifactType",
    "AttachmentManifest",
    "BinaryBlob",
    "ChatlogMessage",
    "ChatlogSource",
    "ContextChunk",
    "ContextEnvelope",
    "ContextIndex",
    "ContextIndexEntry",
    "ContextTabInfo",
    "CutReason",
    "CutType",
    "Dimensions",
    "EnvelopeOptions",
    "EnvelopeStats",
    "ExtractedContent",
    "ImageData",
    "ImageSource",
    "LocationType",
    "NoteSource",
    "ParsedAnchor",
    "PdfContent",
    "PdfPage",
    "PdfPageImage",
    "PdfSource",
    "QualityHint",
    "SerializedDOM",
    "Source",
    "SourceKind",
    "TokenBudgetCut",
    "TokenBudgetOptions",
    "TokenBudgetState",
    "WebpageSource",
    "utc_now",
]
