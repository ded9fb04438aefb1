"""Value types shared by the queue, converters and packager."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Optional

from .compression import CompressionLevel

ProgressSink = Callable[[int], None]


def _discard_progress(value: int) -> None:
    return None


class ProgressReporter:
    """Guard a progress sink so observers only see a well-formed sequence.

    Values are clamped to ``0..100`` and never decrease. The reporter closes
    at 100 or on :meth:`fail`; nothing is forwarded after that.
    """

    def __init__(self, sink: Optional[ProgressSink] = None) -> None:
        self._sink = sink or _discard_progress
        self._last = -1
        self._closed = False

    @property
    def last(self) -> int:
        return max(self._last, 0)

    @property
    def closed(self) -> bool:
        return self._closed

    def report(self, value: int) -> None:
        if self._closed:
            return
        clamped = max(0, min(100, int(value)))
        if clamped <= self._last:
            return
        self._last = clamped
        if clamped == 100:
            self._closed = True
        self._sink(clamped)

    def fail(self) -> None:
        self._closed = True


@dataclass
class ConversionJob:
    """One file scheduled for conversion.

    ``result`` is attached by the queue at admission and resolves with the
    job's :class:`Artifact` or rejects with a ``ConversionError``.
    """

    key: str
    data: bytes
    source_format: str
    target_format: str
    compression: CompressionLevel = CompressionLevel.NONE
    progress: ProgressReporter = field(default_factory=ProgressReporter)
    result: Optional["asyncio.Future[Artifact]"] = field(
        default=None, repr=False
    )


@dataclass(frozen=True)
class Artifact:
    """A produced file ready to be saved by the presentation layer."""

    data: bytes
    filename: str
    mime_type: str


@dataclass(frozen=True)
class BatchResult:
    """Artifacts of the successful jobs of a batch, in submission order."""

    artifacts: tuple[Artifact, ...] = ()

    def __len__(self) -> int:
        return len(self.artifacts)


__all__ = [
    "Artifact",
    "BatchResult",
    "ConversionJob",
    "ProgressReporter",
    "ProgressSink",
]
