"""Assemble a batch's artifacts into a single deliverable."""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass
from pathlib import PurePath
from typing import Iterable, Optional, Sequence, Union

from .models import Artifact, BatchResult
from .registry import mime_type_for

ARCHIVE_FILENAME = "converted_files.zip"
ARCHIVE_COMPRESSION_LEVEL = 6


@dataclass(frozen=True)
class Deliverable:
    """What the presentation layer saves: one file, possibly an archive."""

    data: bytes
    filename: str
    mime_type: str
    entries: tuple[str, ...] = ()

    @property
    def is_archive(self) -> bool:
        return bool(self.entries)


class BatchPackager:
    """One artifact is delivered as-is; several are zipped together."""

    def __init__(
        self,
        *,
        archive_name: str = ARCHIVE_FILENAME,
        compression_level: int = ARCHIVE_COMPRESSION_LEVEL,
    ) -> None:
        self.archive_name = archive_name
        self.compression_level = compression_level

    def package(
        self, artifacts: Union[BatchResult, Sequence[Artifact]]
    ) -> Optional[Deliverable]:
        """Return the deliverable, or ``None`` when nothing succeeded."""

        if isinstance(artifacts, BatchResult):
            artifacts = artifacts.artifacts
        items = tuple(artifacts)
        if not items:
            return None
        if len(items) == 1:
            only = items[0]
            return Deliverable(
                data=only.data, filename=only.filename, mime_type=only.mime_type
            )

        names = unique_entry_names(item.filename for item in items)
        buffer = io.BytesIO()
        with zipfile.ZipFile(
            buffer,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=self.compression_level,
        ) as archive:
            for name, item in zip(names, items):
                archive.writestr(name, item.data)
        return Deliverable(
            data=buffer.getvalue(),
            filename=self.archive_name,
            mime_type=mime_type_for(".zip"),
            entries=tuple(names),
        )


def unique_entry_names(filenames: Iterable[str]) -> list[str]:
    """Version repeated names as ``stem-01.ext``, ``stem-02.ext``, ..."""

    seen: set[str] = set()
    result: list[str] = []
    for filename in filenames:
        candidate = filename
        counter = 1
        while candidate in seen:
            path = PurePath(filename)
            candidate = f"{path.stem}-{counter:02d}{path.suffix}"
            counter += 1
        seen.add(candidate)
        result.append(candidate)
    return result


__all__ = [
    "ARCHIVE_COMPRESSION_LEVEL",
    "ARCHIVE_FILENAME",
    "BatchPackager",
    "Deliverable",
    "unique_entry_names",
]
