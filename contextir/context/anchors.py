"""Content-addressed source ids and citation anchors.

Anchors are ``src:<8-hex>`` optionally followed by ``#<location>``, e.g.
``src:9f3a7b2c#p=12`` for page 12 of a PDF. They are generated by this
package and echoed back by the model in citations, so parsing is strict:
anything malformed is a caller bug and raises.
"""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass
from typing import Any

from contextir.models.sources import AnchorLocation, LocationType, ParsedAnchor

SOURCE_ID_PREFIX = "src:"
SOURCE_ID_HASH_LENGTH = 8

_SOURCE_ID_RE = re.compile(r"src:([a-f0-9]+)", re.IGNORECASE)

_LOCATION_PREFIXES: tuple[tuple[str, LocationType], ...] = (
    ("p=", LocationType.page),
    ("sec=", LocationType.section),
    ("msg=", LocationType.message),
    ("r=", LocationType.region),
)


class AnchorError(ValueError):
    """Base class for malformed source ids and anchors."""


class InvalidAnchorFormat(AnchorError):
    pass


class InvalidAnchorLocation(AnchorError):
    pass


@dataclass(frozen=True, slots=True)
class PageLocation:
    page: int


@dataclass(frozen=True, slots=True)
class SectionLocation:
    path: str


@dataclass(frozen=True, slots=True)
class MessageLocation:
    index: int


@dataclass(frozen=True, slots=True)
class RegionLocation:
    x: int
    y: int
    w: int
    h: int


LocationSpec = PageLocation | SectionLocation | MessageLocation | RegionLocation


def compute_source_id(content: str | Any, url: str | None = None) -> str:
    """Return ``src:<first 8 hex chars of sha256>`` for *url* + *content*.

    The canonical form is compact JSON ``{"url": ..., "content": ...}`` with
    keys in that order and non-ASCII left unescaped; non-string content is
    JSON-encoded first. Identical input always yields the identical id.
    """
    canonical = json.dumps(
        {"url": url or "", "content": _normalize_content(content)},
        separators=(",", ":"),
        ensure_ascii=False,
    )
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{SOURCE_ID_PREFIX}{digest[:SOURCE_ID_HASH_LENGTH]}"


def _normalize_content(content: str | Any) -> str:
    if isinstance(content, str):
        return content
    if hasattr(content, "model_dump"):
        content = content.model_dump(mode="json", by_alias=True)
    return json.dumps(content, separators=(",", ":"), ensure_ascii=False, default=str)


def create_anchor(source_id: str, location: LocationSpec | None = None) -> str:
    if location is None:
        return source_id
    return f"{source_id}#{_format_location(location)}"


def _format_location(location: LocationSpec) -> str:
    if isinstance(location, PageLocation):
        return f"p={location.page}"
    if isinstance(location, SectionLocation):
        return f"sec={location.path}"
    if isinstance(location, MessageLocation):
        return f"msg={location.index}"
    if isinstance(location, RegionLocation):
        return f"r={location.x},{location.y},{location.w},{location.h}"
    raise TypeError(f"unsupported anchor location: {location!r}")


def parse_anchor(anchor: str) -> ParsedAnchor:
    """Split *anchor* into its source id and optional location.

    Raises :class:`InvalidAnchorFormat` for a bad prefix or hash, and
    :class:`InvalidAnchorLocation` for an empty or ``=``-less location.
    Unrecognised ``key=value`` locations parse with ``type=key``.
    """
    if not anchor.startswith(SOURCE_ID_PREFIX):
        raise InvalidAnchorFormat(f'Invalid anchor format: must start with "src:", got "{anchor}"')

    source_id, sep, location_part = anchor.partition("#")
    validate_source_id(source_id)
    if not sep:
        return ParsedAnchor(source_id=source_id)

    if not location_part:
        raise InvalidAnchorLocation(f'Invalid anchor: empty location after "#" in "{anchor}"')

    return ParsedAnchor(
        source_id=source_id,
        location=_parse_location(location_part),
        raw_location=location_part,
    )


def validate_source_id(source_id: str) -> None:
    match = _SOURCE_ID_RE.fullmatch(source_id)
    if match is None:
        raise InvalidAnchorFormat(
            f'Invalid source ID format: expected "src:<hex>", got "{source_id}"'
        )
    hash_part = match.group(1)
    if len(hash_part) != SOURCE_ID_HASH_LENGTH:
        raise InvalidAnchorFormat(
            f"Invalid source ID: hash must be {SOURCE_ID_HASH_LENGTH} chars, "
            f'got {len(hash_part)} in "{source_id}"'
        )


def _parse_location(location: str) -> AnchorLocation:
    for prefix, location_type in _LOCATION_PREFIXES:
        if location.startswith(prefix):
            return AnchorLocation(type=location_type.value, value=location[len(prefix) :])

    key, sep, value = location.partition("=")
    if sep:
        return AnchorLocation(type=key, value=value)
    raise InvalidAnchorLocation(f'Unknown location format: "{location}"')


def is_valid_source_id(value: str) -> bool:
    try:
        validate_source_id(value)
    except AnchorError:
        return False
    return True


def is_valid_anchor(value: str) -> bool:
    try:
        parse_anchor(value)
    except AnchorError:
        return False
    return True


def get_source_id_from_anchor(anchor: str) -> str:
    return parse_anchor(anchor).source_id


__all__ = [
    "AnchorError",
    "InvalidAnchorFormat",
    "InvalidAnchorLocation",
    "LocationSpec",
    "MessageLocation",
    "PageLocation",
    "RegionLocation",
    "SectionLocation",
    "compute_source_id",
    "create_anchor",
    "get_source_id_from_anchor",
    "is_valid_anchor",
    "is_valid_source_id",
    "parse_anchor",
    "validate_source_id",
]
