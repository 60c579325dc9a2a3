"""Build a :class:`ContextEnvelope` from normalized sources.

The envelope is assembled at degrade stage 0 with everything included;
budget enforcement is a separate pass (:mod:`contextir.context.budget`).
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Sequence

from contextir.context.anchors import PageLocation, create_anchor
from contextir.context.render import render_context_index
from contextir.core.token_counter import estimate_tokens
from contextir.models.envelope import (
    ArtifactType,
    AttachmentManifest,
    ContextChunk,
    ContextEnvelope,
    ContextIndex,
    ContextIndexEntry,
    EnvelopeOptions,
    EnvelopeStats,
    TokenBudgetState,
)
from contextir.models.sources import (
    BinaryBlob,
    ChatlogSource,
    ImageSource,
    NoteSource,
    PdfSource,
    Source,
    SourceKind,
    WebpageSource,
)

logger = logging.getLogger(__name__)

_PAGE_ANCHOR_RE = re.compile(r"#p=(\d+)$")


def build_context_envelope(
    sources: Sequence[Source],
    task: str,
    options: EnvelopeOptions | None = None,
) -> ContextEnvelope:
    options = options or EnvelopeOptions()
    include_attachments = options.include_attachments

    index = ContextIndex(
        entries=[_build_index_entry(source, include_attachments) for source in sources]
    )
    chunks = [chunk for source in sources for chunk in _build_chunks(source)]
    attachments = (
        [attachment for source in sources for attachment in _build_attachments(source)]
        if include_attachments
        else []
    )

    used_tokens = (
        estimate_tokens(task)
        + estimate_tokens(render_context_index(index))
        + sum(chunk.token_count for chunk in chunks)
    )
    logger.debug(
        "built envelope: %d sources, %d chunks, %d attachments, %d tokens",
        len(sources),
        len(chunks),
        len(attachments),
        used_tokens,
    )
    return ContextEnvelope(
        sources=list(sources),
        index=index,
        chunks=chunks,
        attachments=attachments,
        budget=TokenBudgetState(max_tokens=options.max_tokens or 0, used_tokens=used_tokens),
        task=task,
    )


def _build_index_entry(source: Source, include_attachments: bool) -> ContextIndexEntry:
    pages_attached: list[int] | None = None
    if isinstance(source, PdfSource) and include_attachments:
        pages_attached = [page.page_number for page in source.pages if page.image] or None

    return ContextIndexEntry(
        source_id=source.source_id,
        title=source.title,
        url=source.url,
        source_type=source.kind,
        pages_attached=pages_attached,
        content_included=True,
    )


def _chunk(source: Source, content: str, extraction_method: str, **fields: object) -> ContextChunk:
    return ContextChunk(
        anchor=fields.pop("anchor", source.source_id),
        source_id=source.source_id,
        source_type=source.kind,
        title=source.title,
        url=source.url,
        extraction_method=extraction_method,
        content=content,
        token_count=estimate_tokens(content),
        **fields,
    )


def _build_chunks(source: Source) -> list[ContextChunk]:
    if isinstance(source, WebpageSource):
        if not source.markdown.strip():
            return []
        method = "app_v1" if source.extraction_type == "app" else "readability_v1"
        return [_chunk(source, source.markdown, method, quality=source.quality)]

    if isinstance(source, PdfSource):
        return [
            _chunk(
                source,
                page.text,
                "pdf_text_v1",
                anchor=create_anchor(source.source_id, PageLocation(page.page_number)),
                quality=page.quality,
            )
            for page in source.pages
            if page.text and page.text.strip()
        ]

    if isinstance(source, ImageSource):
        if not source.alt_text or not source.alt_text.strip():
            return []
        return [_chunk(source, source.alt_text, "alt_text_v1")]

    if isinstance(source, NoteSource):
        if not source.text.strip():
            return []
        return [_chunk(source, source.text, "note_v1")]

    if isinstance(source, ChatlogSource):
        if not source.messages:
            return []
        content = "\n\n".join(f"**{message.role}**: {message.content}" for message in source.messages)
        return [_chunk(source, content, "chatlog_v1")]

    raise TypeError(f"unsupported source: {source!r}")


def _attachment(
    source: Source, artifact_type: ArtifactType, blob: BinaryBlob, anchor: str | None = None
) -> AttachmentManifest:
    return AttachmentManifest(
        anchor=anchor or source.source_id,
        source_id=source.source_id,
        artifact_type=artifact_type,
        mime_type=blob.mime_type,
        byte_size=blob.byte_size,
        included=True,
    )


def _build_attachments(source: Source) -> list[AttachmentManifest]:
    if isinstance(source, WebpageSource):
        if source.screenshot is None:
            return []
        return [_attachment(source, ArtifactType.screenshot, source.screenshot)]

    if isinstance(source, PdfSource):
        attachments: list[AttachmentManifest] = []
        if source.pdf_bytes is not None:
            attachments.append(_attachment(source, ArtifactType.raw_pdf, source.pdf_bytes))
        for page in source.pages:
            if page.image is None:
                continue
            anchor = create_anchor(source.source_id, PageLocation(page.page_number))
            attachments.append(_attachment(source, ArtifactType.page_image, page.image, anchor))
        return attachments

    if isinstance(source, ImageSource):
        return [_attachment(source, ArtifactType.raw_image, source.image)]

    if isinstance(source, NoteSource | ChatlogSource):
        return []

    raise TypeError(f"unsupported source: {source!r}")


def get_attachment_data(envelope: ContextEnvelope, anchor: str) -> BinaryBlob | None:
    """Return the binary payload an attachment anchor refers to, if any.

    Bare webpage anchors resolve to the screenshot, bare image anchors to
    the image, ``#p=N`` PDF anchors to that page's image and bare PDF
    anchors to the raw PDF bytes.
    """
    source_id = anchor.split("#", 1)[0]
    source = next((s for s in envelope.sources if s.source_id == source_id), None)
    if source is None:
        return None

    if isinstance(source, WebpageSource) and anchor == source.source_id:
        return source.screenshot
    if isinstance(source, ImageSource) and anchor == source.source_id:
        return source.image
    if isinstance(source, PdfSource):
        page_match = _PAGE_ANCHOR_RE.search(anchor)
        if page_match:
            page_number = int(page_match.group(1))
            page = next((p for p in source.pages if p.page_number == page_number), None)
            return page.image if page is not None else None
        if anchor == source.source_id:
            return source.pdf_bytes
    return None


def get_envelope_stats(envelope: ContextEnvelope) -> EnvelopeStats:
    counts = Counter(source.kind for source in envelope.sources)
    return EnvelopeStats(
        source_count=len(envelope.sources),
        chunk_count=len(envelope.chunks),
        attachment_count=sum(1 for attachment in envelope.attachments if attachment.included),
        total_tokens=envelope.budget.used_tokens,
        sources_by_type={kind: counts.get(kind.value, 0) for kind in SourceKind},
    )


__all__ = [
    "build_context_envelope",
    "get_attachment_data",
    "get_envelope_stats",
]
