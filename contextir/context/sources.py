"""Normalize extracted content into typed :data:`Source` values.

The extraction layer hands over loosely shaped ``ExtractedContent``: a type
tag, a string or structured payload, optional screenshot/image data and a
free-form metadata mapping. One bad item must not abort a multi-source
query, so nothing here raises on odd input; fields that cannot be used
degrade to the safest value and a warning is logged.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from contextir.context.anchors import compute_source_id
from contextir.context.quality import assess_quality
from contextir.core.logging import correlation_scope
from contextir.models.extracted import (
    ContextTabInfo,
    ExtractedContent,
    PdfContent,
    PdfPageImage,
    SerializedDOM,
    utc_now,
)
from contextir.models.sources import (
    BinaryBlob,
    ChatlogMessage,
    ChatlogSource,
    ImageSource,
    NoteSource,
    PdfPage,
    PdfSource,
    QualityHint,
    Source,
    WebpageSource,
)

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"data:([^;]+);base64,(.+)", re.DOTALL)
_PAGE_MARKER_RE = re.compile(r"---\s*Page\s+(\d+)\s*---")
_USER_QUERY_RE = re.compile(
    r"User Query(?:\s*\(with context\))?:\s*(.*?)(?=Assistant Response:|\Z)",
    re.IGNORECASE | re.DOTALL,
)
_ASSISTANT_RESPONSE_RE = re.compile(
    r"Assistant Response:\s*(.*?)(?=Model:|Tokens|\Z)",
    re.IGNORECASE | re.DOTALL,
)

# Any of these metadata keys marks a text item as a saved model conversation.
_CHATLOG_METADATA_KEYS: tuple[str, ...] = ("persistentId", "shortId", "slug")
_CHATLOG_MARKERS: tuple[str, ...] = ("User Query", "Assistant Response")

_EXTRACTION_TYPES: tuple[str, ...] = ("article", "app")
_PLACEHOLDER_IMAGE_MIME = "image/png"
_UNKNOWN_MIME = "application/octet-stream"

_QUALITY_RANK: tuple[QualityHint, ...] = (
    QualityHint.low,
    QualityHint.ocr_like,
    QualityHint.mixed,
)


def build_source(extracted: ExtractedContent, tab_info: ContextTabInfo) -> Source:
    """Build the typed source for one extracted item.

    ``html`` becomes a webpage, ``pdf`` a PDF, ``image`` an image, ``text``
    a chatlog or a note; any other type falls back to a note.
    """
    content = extracted.content if extracted.content is not None else ""
    source_id = compute_source_id(content, url=extracted.url)
    base: dict[str, Any] = {
        "source_id": source_id,
        "title": extracted.title,
        "url": extracted.url or None,
        "captured_at": utc_now(),
        "tab_id": tab_info.id,
    }

    with correlation_scope(source_id=source_id):
        if extracted.type == "html":
            source: Source = _build_webpage(extracted, base)
        elif extracted.type == "pdf":
            source = _build_pdf(extracted, base)
        elif extracted.type == "image":
            source = _build_image(extracted, base)
        elif extracted.type == "text":
            if _is_llm_response(extracted):
                source = _build_chatlog(extracted, base)
            else:
                source = _build_note(extracted, base)
        else:
            logger.warning("unknown extracted type %r, treating as note", extracted.type)
            source = _build_note(extracted, base)

        logger.debug("built %s source %r", source.kind, source.title)
    return source


def build_sources(items: Iterable[tuple[ExtractedContent, ContextTabInfo]]) -> list[Source]:
    return [build_source(extracted, tab_info) for extracted, tab_info in items]


# ----------------------------------------------------------------------
# Per-kind builders
# ----------------------------------------------------------------------


def _build_webpage(extracted: ExtractedContent, base: dict[str, Any]) -> WebpageSource:
    markdown = _extract_markdown(extracted)
    extraction_type = _metadata(extracted).get("extractionType", "article")
    if extraction_type not in _EXTRACTION_TYPES:
        logger.warning("unsupported extractionType %r, using 'article'", extraction_type)
        extraction_type = "article"

    screenshot = data_url_to_blob(extracted.screenshot) if extracted.screenshot else None
    return WebpageSource(
        **base,
        markdown=markdown,
        extraction_type=extraction_type,
        quality=assess_quality(markdown),
        screenshot=screenshot,
    )


def _build_pdf(extracted: ExtractedContent, base: dict[str, Any]) -> PdfSource:
    content = extracted.content
    if isinstance(content, PdfContent):
        text: str | None = content.text
    elif isinstance(content, str):
        text = content
    else:
        text = None

    pages: dict[int, dict[str, Any]] = {}
    if text is not None:
        parsed = parse_page_markers(text)
        if len(parsed) > 1:
            for page_number, page_text in parsed:
                if page_number in pages:
                    logger.warning("repeated marker for page %d, appending its text", page_number)
                    page_text = f"{pages[page_number]['text']}\n\n{page_text}"
                pages[page_number] = {"text": page_text, "quality": assess_quality(page_text)}
        else:
            pages[1] = {"text": text, "quality": assess_quality(text)}

    for page_image in _page_images(extracted):
        blob = data_url_to_blob(page_image.data, fallback_mime=page_image.mime_type)
        pages.setdefault(page_image.page_number, {})["image"] = blob

    return PdfSource(
        **base,
        pages=[PdfPage(page_number=number, **fields) for number, fields in sorted(pages.items())],
    )


def _build_image(extracted: ExtractedContent, base: dict[str, Any]) -> ImageSource:
    if extracted.image_data is not None:
        data = _strip_data_url(extracted.image_data.data)
        image = BinaryBlob(
            data=data,
            mime_type=extracted.image_data.mime_type,
            byte_size=estimate_base64_size(data),
        )
    else:
        logger.warning("image item has no image data, using empty placeholder")
        image = BinaryBlob(data="", mime_type=_PLACEHOLDER_IMAGE_MIME, byte_size=0)

    alt_text = extracted.content if isinstance(extracted.content, str) else None
    return ImageSource(**base, image=image, alt_text=alt_text)


def _build_note(extracted: ExtractedContent, base: dict[str, Any]) -> NoteSource:
    text = extracted.content if isinstance(extracted.content, str) else ""
    return NoteSource(**base, text=text)


def _build_chatlog(extracted: ExtractedContent, base: dict[str, Any]) -> ChatlogSource:
    text = extracted.content if isinstance(extracted.content, str) else ""
    model = _metadata(extracted).get("model")
    return ChatlogSource(
        **base,
        model=model if isinstance(model, str) else None,
        messages=parse_chatlog_messages(text),
    )


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def _metadata(extracted: ExtractedContent) -> Mapping[str, Any]:
    return extracted.metadata or {}


def _extract_markdown(extracted: ExtractedContent) -> str:
    content = extracted.content
    if isinstance(content, str):
        return content
    if isinstance(content, SerializedDOM):
        return content.main_content or ""
    if isinstance(content, PdfContent):
        return content.text
    if content is None:
        return ""
    return json.dumps(content, separators=(",", ":"), ensure_ascii=False, default=str)


def _is_llm_response(extracted: ExtractedContent) -> bool:
    metadata = _metadata(extracted)
    if any(metadata.get(key) for key in _CHATLOG_METADATA_KEYS):
        return True
    content = extracted.content
    return isinstance(content, str) and any(marker in content for marker in _CHATLOG_MARKERS)


def _page_images(extracted: ExtractedContent) -> list[PdfPageImage]:
    raw = _metadata(extracted).get("pdfPageImages")
    if not raw:
        return []
    if not isinstance(raw, list):
        logger.warning("pdfPageImages is not a list, ignoring")
        return []

    images: list[PdfPageImage] = []
    for entry in raw:
        try:
            images.append(PdfPageImage.model_validate(entry))
        except ValidationError as exc:
            logger.warning("skipping malformed pdf page image: %s", exc.errors()[0]["msg"])
    return images


def parse_chatlog_messages(text: str) -> list[ChatlogMessage]:
    """Split a saved conversation into user/assistant messages.

    Recognises a leading ``User Query:`` section followed by an
    ``Assistant Response:`` section. Text in neither shape becomes a single
    assistant message.
    """
    messages: list[ChatlogMessage] = []

    user_match = _USER_QUERY_RE.search(text)
    if user_match and user_match.group(1).strip():
        messages.append(
            ChatlogMessage(index=len(messages), role="user", content=user_match.group(1).strip())
        )

    assistant_match = _ASSISTANT_RESPONSE_RE.search(text)
    if assistant_match and assistant_match.group(1).strip():
        messages.append(
            ChatlogMessage(
                index=len(messages),
                role="assistant",
                content=assistant_match.group(1).strip(),
            )
        )

    if not messages and text.strip():
        messages.append(ChatlogMessage(index=0, role="assistant", content=text.strip()))
    return messages


def parse_page_markers(content: str) -> list[tuple[int, str]]:
    """Split ``--- Page N ---`` delimited text into ``(page_number, text)`` pairs."""
    # re.split with one group yields [preamble, n1, text1, n2, text2, ...]
    parts = _PAGE_MARKER_RE.split(content)
    return [
        (int(number), text.strip())
        for number, text in zip(parts[1::2], parts[2::2], strict=True)
    ]


def data_url_to_blob(value: str, fallback_mime: str = _UNKNOWN_MIME) -> BinaryBlob:
    match = _DATA_URL_RE.fullmatch(value)
    if match:
        mime_type, data = match.group(1), match.group(2)
    else:
        mime_type, data = fallback_mime, value
    return BinaryBlob(data=data, mime_type=mime_type, byte_size=estimate_base64_size(data))


def _strip_data_url(value: str) -> str:
    match = _DATA_URL_RE.fullmatch(value)
    return match.group(2) if match else value


def estimate_base64_size(data: str) -> int:
    """Decoded byte size of base64 *data*: ``floor(len*3/4) - padding``.

    Computed from the length alone; the payload is never decoded.
    """
    clean = re.sub(r"\s", "", data)
    return max(len(clean) * 3 // 4 - clean.count("="), 0)


# ----------------------------------------------------------------------
# Source accessors
# ----------------------------------------------------------------------


def get_source_text(source: Source) -> str:
    if isinstance(source, WebpageSource):
        return source.markdown
    if isinstance(source, PdfSource):
        return "\n\n".join(page.text or "" for page in source.pages)
    if isinstance(source, ImageSource):
        return source.alt_text or ""
    if isinstance(source, NoteSource):
        return source.text
    if isinstance(source, ChatlogSource):
        return "\n\n".join(f"{message.role}: {message.content}" for message in source.messages)
    raise TypeError(f"unsupported source: {source!r}")


def get_source_quality(source: Source) -> QualityHint:
    """Overall quality of a source; for PDFs the worst page wins."""
    if isinstance(source, WebpageSource):
        return source.quality
    if isinstance(source, PdfSource):
        qualities = {page.quality for page in source.pages if page.quality is not None}
        for hint in _QUALITY_RANK:
            if hint in qualities:
                return hint
        return QualityHint.good
    if isinstance(source, NoteSource):
        return assess_quality(source.text)
    if isinstance(source, ImageSource | ChatlogSource):
        return QualityHint.good
    raise TypeError(f"unsupported source: {source!r}")


__all__ = [
    "build_source",
    "build_sources",
    "data_url_to_blob",
    "estimate_base64_size",
    "get_source_quality",
    "get_source_text",
    "parse_chatlog_messages",
    "parse_page_markers",
]
