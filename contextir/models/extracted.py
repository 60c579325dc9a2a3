from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(UTC)


class _CollaboratorModel(BaseModel):
    # Collaborators send camelCase keys; Python callers use field names.
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class SerializedDOM(_CollaboratorModel):
    main_content: str = Field(alias="mainContent")
    headings: list[str]
    title: str = ""
    url: str = ""
    paragraphs: list[str] = Field(default_factory=list)
    links: list[dict[str, str]] = Field(default_factory=list)
    meta_tags: dict[str, str] = Field(default_factory=dict, alias="metaTags")


class PdfContent(_CollaboratorModel):
    text: str
    num_pages: int = Field(alias="numPages")
    metadata: dict[str, Any] | None = None


class ImageData(_CollaboratorModel):
    data: str
    mime_type: str = Field(alias="mimeType")


class PdfPageImage(_CollaboratorModel):
    page_number: int = Field(alias="pageNumber")
    data: str
    mime_type: str = Field(default="image/png", alias="mimeType")


class ExtractedContent(_CollaboratorModel):
    """One captured item as handed over by the content-extraction layer.

    ``type`` is kept as a free string: unknown types are normalized to notes
    rather than rejected.
    """

    type: str
    title: str = ""
    url: str = ""
    # Tried in order: a mapping only stays a plain dict when neither the DOM
    # nor the PDF shape validates.
    content: str | SerializedDOM | PdfContent | dict[str, Any] | None = Field(
        default=None, union_mode="left_to_right"
    )
    screenshot: str | None = None
    image_data: ImageData | None = Field(default=None, alias="imageData")
    metadata: dict[str, Any] | None = None


class ContextTabInfo(_CollaboratorModel):
    id: str
    title: str = ""
    url: str = ""
    type: str = "webpage"
    persistent_id: str | None = Field(default=None, alias="persistentId")
    short_id: str | None = Field(default=None, alias="shortId")
    slug: str | None = None


__all__ = [
    "ContextTabInfo",
    "ExtractedContent",
    "ImageData",
    "PdfContent",
    "PdfPageImage",
    "SerializedDOM",
    "utc_now",
]
