"""Canonical text rendering of a context envelope.

Prompts are written against this exact text shape: section labels, field
labels and separators must not change.
"""

from __future__ import annotations

from contextir.models.envelope import (
    AttachmentManifest,
    ContextChunk,
    ContextEnvelope,
    ContextIndex,
)

INDEX_HEADER = "=== CONTEXT INDEX ==="
CONTENT_HEADER = "=== CONTENT ==="
ATTACHMENTS_HEADER = "=== ATTACHMENTS ==="
TASK_HEADER = "=== TASK ==="

_SECTION_SEPARATOR = "\n\n"


def render_context_index(index: ContextIndex) -> str:
    if not index.entries:
        return f"{INDEX_HEADER}\n(no sources)"

    lines: list[str] = []
    for position, entry in enumerate(index.entries, start=1):
        parts = [f"[{position}]", entry.source_id, str(entry.source_type), f'"{entry.title}"']
        if entry.url:
            parts.append(entry.url)
        if entry.pages_attached:
            pages = ",".join(str(page) for page in entry.pages_attached)
            parts.append(f"pages attached: [{pages}]")
        if entry.content_included:
            parts.append("full content")
        elif entry.summary:
            parts.append(f'summary: "{entry.summary}"')
        lines.append(" | ".join(parts))
    return f"{INDEX_HEADER}\n" + "\n".join(lines)


def render_chunk(chunk: ContextChunk) -> str:
    header = [
        f"anchor: {chunk.anchor}",
        f"source_type: {chunk.source_type}",
        f"title: {chunk.title}",
    ]
    if chunk.url:
        header.append(f"url: {chunk.url}")
    header.append(f"extraction: {chunk.extraction_method}")
    if chunk.quality:
        header.append(f"quality: {chunk.quality}")
    if chunk.truncated:
        header.append("status: [truncated]")
    return "[CHUNK]\n" + "\n".join(header) + f"\n---\n{chunk.content}\n[/CHUNK]"


def render_chunks(chunks: list[ContextChunk]) -> str:
    if not chunks:
        return f"{CONTENT_HEADER}\n(no content)"
    return f"{CONTENT_HEADER}\n\n" + "\n\n".join(render_chunk(chunk) for chunk in chunks)


def format_byte_size(size: int) -> str:
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}KB"
    return f"{size / (1024 * 1024):.1f}MB"


def render_attachments(attachments: list[AttachmentManifest]) -> str:
    included = [attachment for attachment in attachments if attachment.included]
    if not included:
        return f"{ATTACHMENTS_HEADER}\n(no attachments)"

    lines: list[str] = []
    for attachment in included:
        parts = [
            f"anchor: {attachment.anchor}",
            f"kind: {attachment.artifact_type}",
            f"mime: {attachment.mime_type}",
        ]
        if attachment.dimensions is not None:
            parts.append(f"{attachment.dimensions.width}x{attachment.dimensions.height}")
        if attachment.byte_size:
            parts.append(format_byte_size(attachment.byte_size))
        lines.append(f"- {' | '.join(parts)}")
    return f"{ATTACHMENTS_HEADER}\n" + "\n".join(lines)


def render_envelope_as_text(envelope: ContextEnvelope) -> str:
    """Render index, content, attachments (if any are included) and task."""
    sections = [render_context_index(envelope.index), render_chunks(envelope.chunks)]
    if any(attachment.included for attachment in envelope.attachments):
        sections.append(render_attachments(envelope.attachments))
    sections.append(f"{TASK_HEADER}\n{envelope.task}")
    if envelope.chunks:
        sections.append(
            "\nWhen referencing content from the attached sources, cite using the anchor format:\n"
            f'"According to {envelope.chunks[0].anchor}, ..."'
        )
    return _SECTION_SEPARATOR.join(sections)


__all__ = [
    "ATTACHMENTS_HEADER",
    "CONTENT_HEADER",
    "INDEX_HEADER",
    "TASK_HEADER",
    "format_byte_size",
    "render_attachments",
    "render_chunk",
    "render_chunks",
    "render_context_index",
    "render_envelope_as_text",
]
