"""Per-family converters and the handler table that dispatches to them."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from ..registry import FormatGroup
from .base import FormatConverter, run_in_workspace
from .document import DocumentConverter
from .image import DEFAULT_MAX_EDGE, ImageConverter
from .media import MediaConverter
from .spreadsheet import SpreadsheetConverter

ConverterTable = Mapping[FormatGroup, FormatConverter]


def build_converters(
    *, max_image_edge: int = DEFAULT_MAX_EDGE
) -> ConverterTable:
    """Return one converter per :class:`FormatGroup`.

    Raises ``RuntimeError`` if a group is left without a handler or a
    handler is registered for a group it does not declare.
    """

    images = ImageConverter(max_edge=max_image_edge)
    media = MediaConverter(images)
    table: dict[FormatGroup, FormatConverter] = {
        FormatGroup.DOCUMENT: DocumentConverter(),
        FormatGroup.SPREADSHEET: SpreadsheetConverter(),
        FormatGroup.IMAGE: images,
        FormatGroup.AUDIO: media,
        FormatGroup.VIDEO: media,
    }
    check_table(table)
    return MappingProxyType(table)


def check_table(table: ConverterTable) -> None:
    missing = [group.value for group in FormatGroup if group not in table]
    if missing:
        raise RuntimeError(
            "No converter registered for: {0}".format(", ".join(missing))
        )
    for group, converter in table.items():
        if group not in converter.groups:
            raise RuntimeError(
                "{0} does not handle the '{1}' group.".format(
                    type(converter).__name__, group.value
                )
            )


__all__ = [
    "ConverterTable",
    "DocumentConverter",
    "FormatConverter",
    "ImageConverter",
    "MediaConverter",
    "SpreadsheetConverter",
    "build_converters",
    "check_table",
    "run_in_workspace",
]
