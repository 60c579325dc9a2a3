from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from contextir.models.extracted import utc_now


class QualityHint(StrEnum):
    good = "good"
    mixed = "mixed"
    low = "low"
    ocr_like = "ocr_like"


class SourceKind(StrEnum):
    webpage = "webpage"
    pdf = "pdf"
    image = "image"
    note = "note"
    chatlog = "chatlog"


class LocationType(StrEnum):
    page = "page"
    section = "section"
    message = "message"
    region = "region"


class BinaryBlob(BaseModel):
    """Base64 payload without a data-URL prefix."""

    model_config = ConfigDict(frozen=True)

    data: str
    mime_type: str
    byte_size: int = Field(ge=0)


class _BaseSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_id: str
    title: str
    url: str | None = None
    captured_at: datetime = Field(default_factory=utc_now)
    tab_id: str | None = None

    @field_validator("captured_at")
    @classmethod
    def _ensure_timezone_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            raise ValueError("captured_at must be timezone-aware")
        return value


class WebpageSource(_BaseSource):
    kind: Literal["webpage"] = "webpage"
    markdown: str
    screenshot: BinaryBlob | None = None
    extraction_type: Literal["article", "app"] = "article"
    quality: QualityHint = QualityHint.good


class PdfPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    page_number: int
    text: str | None = None
    image: BinaryBlob | None = None
    quality: QualityHint | None = None


class PdfSource(_BaseSource):
    kind: Literal["pdf"] = "pdf"
    pdf_bytes: BinaryBlob | None = None
    pages: list[PdfPage] = Field(default_factory=list)


class ImageSource(_BaseSource):
    kind: Literal["image"] = "image"
    image: BinaryBlob
    alt_text: str | None = None


class NoteSource(_BaseSource):
    kind: Literal["note"] = "note"
    text: str


class ChatlogMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    role: Literal["user", "assistant"]
    content: str


class ChatlogSource(_BaseSource):
    kind: Literal["chatlog"] = "chatlog"
    model: str | None = None
    messages: list[ChatlogMessage] = Field(default_factory=list)


Source = Annotated[
    WebpageSource | PdfSource | ImageSource | NoteSource | ChatlogSource,
    Field(discriminator="kind"),
]


class AnchorLocation(BaseModel):
    """Parsed ``#key=value`` suffix of an anchor.

    ``type`` is one of :class:`LocationType` for known prefixes, or the raw
    key for locations this version does not recognise.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    value: str


class ParsedAnchor(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_id: str
    location: AnchorLocation | None = None
    raw_location: str | None = None


__all__ = [
    "AnchorLocation",
    "BinaryBlob",
    "ChatlogMessage",
    "ChatlogSource",
    "ImageSource",
    "LocationType",
    "NoteSource",
    "ParsedAnchor",
    "PdfPage",
    "PdfSource",
    "QualityHint",
    "Source",
    "SourceKind",
    "WebpageSource",
]
