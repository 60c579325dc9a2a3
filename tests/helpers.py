"""Shared builders for sources and envelopes."""

from __future__ import annotations

from contextir.models.envelope import ContextEnvelope
from contextir.models.sources import (
    BinaryBlob,
    ChatlogMessage,
    ChatlogSource,
    ImageSource,
    NoteSource,
    PdfPage,
    PdfSource,
    QualityHint,
    WebpageSource,
)

# 12 base64 chars -> 9 bytes
PNG_B64 = "iVBORw0KGgoA"


def blob(data: str = PNG_B64, mime_type: str = "image/png") -> BinaryBlob:
    return BinaryBlob(data=data, mime_type=mime_type, byte_size=len(data) * 3 // 4 - data.count("="))


def make_note(source_id: str, text: str, title: str | None = None) -> NoteSource:
    return NoteSource(source_id=f"src:{source_id}", title=title or f"Note {source_id}", text=text)


def make_webpage(
    source_id: str,
    markdown: str,
    *,
    screenshot: BinaryBlob | None = None,
    extraction_type: str = "article",
) -> WebpageSource:
    return WebpageSource(
        source_id=f"src:{source_id}",
        title=f"Page {source_id}",
        url=f"https://example.com/{source_id}",
        markdown=markdown,
        extraction_type=extraction_type,
        quality=QualityHint.good,
        screenshot=screenshot,
    )


def make_pdf(
    source_id: str,
    pages: list[tuple[str | None, BinaryBlob | None]],
    *,
    pdf_bytes: BinaryBlob | None = None,
) -> PdfSource:
    return PdfSource(
        source_id=f"src:{source_id}",
        title=f"Doc {source_id}",
        url=f"https://example.com/{source_id}.pdf",
        pdf_bytes=pdf_bytes,
        pages=[
            PdfPage(
                page_number=number,
                text=text,
                image=image,
                quality=QualityHint.good if text else None,
            )
            for number, (text, image) in enumerate(pages, start=1)
        ],
    )


def make_image(source_id: str, alt_text: str | None = None) -> ImageSource:
    return ImageSource(
        source_id=f"src:{source_id}",
        title=f"Image {source_id}",
        image=blob(),
        alt_text=alt_text,
    )


def make_chatlog(source_id: str, *turns: tuple[str, str]) -> ChatlogSource:
    return ChatlogSource(
        source_id=f"src:{source_id}",
        title=f"Chat {source_id}",
        model="test-model",
        messages=[
            ChatlogMessage(index=index, role=role, content=content)
            for index, (role, content) in enumerate(turns)
        ],
    )


def with_scores(envelope: ContextEnvelope, scores: list[float]) -> ContextEnvelope:
    """Attach relevance scores to chunks in order; missing scores become 0."""
    chunks = [
        chunk.model_copy(update={"relevance_score": scores[i] if i < len(scores) else 0.0})
        for i, chunk in enumerate(envelope.chunks)
    ]
    return envelope.model_copy(update={"chunks": chunks})
