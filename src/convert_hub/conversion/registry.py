"""Static table of supported formats grouped by media family.

Every function here is total: unknown extensions produce ``None`` or an
empty list so callers can degrade (hide the convert action) instead of
handling errors.
"""

from __future__ import annotations

from enum import Enum
from pathlib import PurePath
from typing import Mapping, Optional


class FormatGroup(Enum):
    """Families of mutually inter-convertible formats."""

    DOCUMENT = "document"
    SPREADSHEET = "spreadsheet"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"


# Order matters: ``possible_targets`` preserves it.
SUPPORTED_FORMATS: Mapping[FormatGroup, tuple[str, ...]] = {
    FormatGroup.DOCUMENT: (
        ".doc",
        ".docx",
        ".odt",
        ".rtf",
        ".txt",
        ".md",
        ".html",
    ),
    FormatGroup.SPREADSHEET: (".xls", ".xlsx", ".csv"),
    FormatGroup.IMAGE: (
        ".jpeg",
        ".jpg",
        ".png",
        ".gif",
        ".heic",
        ".webp",
        ".bmp",
    ),
    FormatGroup.AUDIO: (".wav", ".mp3", ".ogg", ".flac", ".m4a"),
    FormatGroup.VIDEO: (".mp4", ".mov", ".webm", ".mkv"),
}

_GROUP_BY_EXTENSION: Mapping[str, FormatGroup] = {
    extension: group
    for group, extensions in SUPPORTED_FORMATS.items()
    for extension in extensions
}

# Conversions that leave the source family: audio-track extraction, a
# representative video frame, and an audio waveform still.
CROSS_GROUP_PATHS: frozenset[tuple[FormatGroup, FormatGroup]] = frozenset(
    {
        (FormatGroup.VIDEO, FormatGroup.AUDIO),
        (FormatGroup.VIDEO, FormatGroup.IMAGE),
        (FormatGroup.AUDIO, FormatGroup.IMAGE),
    }
)

_MIME_TYPES: Mapping[str, str] = {
    ".doc": "application/msword",
    ".docx": (
        "application/vnd.openxmlformats-officedocument"
        ".wordprocessingml.document"
    ),
    ".odt": "application/vnd.oasis.opendocument.text",
    ".rtf": "application/rtf",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".html": "text/html",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": (
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    ),
    ".csv": "text/csv",
    ".jpeg": "image/jpeg",
    ".jpg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".heic": "image/heic",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".flac": "audio/flac",
    ".m4a": "audio/mp4",
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
    ".zip": "application/zip",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def normalize_extension(value: str) -> str:
    """Return ``value`` lower-cased with exactly one leading dot."""

    stripped = value.strip().lower().lstrip(".")
    return f".{stripped}" if stripped else ""


def extension_of(filename: str) -> str:
    """Return the normalized suffix of ``filename`` (``""`` when absent)."""

    return normalize_extension(PurePath(filename).suffix)


def group_of(extension: str) -> Optional[FormatGroup]:
    return _GROUP_BY_EXTENSION.get(normalize_extension(extension))


def possible_targets(extension: str) -> list[str]:
    """Return other members of the extension's group, in table order."""

    source = normalize_extension(extension)
    group = _GROUP_BY_EXTENSION.get(source)
    if group is None:
        return []
    return [
        candidate
        for candidate in SUPPORTED_FORMATS[group]
        if candidate != source
    ]


def cross_group_targets(extension: str) -> list[str]:
    """Return targets outside the extension's own group, in table order."""

    source_group = group_of(extension)
    if source_group is None:
        return []
    return [
        candidate
        for group, extensions in SUPPORTED_FORMATS.items()
        if (source_group, group) in CROSS_GROUP_PATHS
        for candidate in extensions
    ]


def can_convert(source: str, target: str) -> bool:
    source_group = group_of(source)
    target_group = group_of(target)
    if source_group is None or target_group is None:
        return False
    if source_group is target_group:
        return normalize_extension(source) != normalize_extension(target)
    return (source_group, target_group) in CROSS_GROUP_PATHS


def mime_type_for(extension: str) -> str:
    return _MIME_TYPES.get(normalize_extension(extension), DEFAULT_MIME_TYPE)


__all__ = [
    "CROSS_GROUP_PATHS",
    "DEFAULT_MIME_TYPE",
    "FormatGroup",
    "SUPPORTED_FORMATS",
    "can_convert",
    "cross_group_targets",
    "extension_of",
    "group_of",
    "mime_type_for",
    "normalize_extension",
    "possible_targets",
]
