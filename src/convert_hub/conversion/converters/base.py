"""Capability shared by every per-family converter."""

from __future__ import annotations

import abc
from typing import Callable, ClassVar, Optional, Sequence

from ..compression import CompressionSettings
from ..engine import Engine
from ..models import ProgressReporter
from ..registry import FormatGroup


class FormatConverter(abc.ABC):
    """Turn one file's bytes into another format of a supported family."""

    groups: ClassVar[frozenset[FormatGroup]] = frozenset()

    def requires_engine(self, source_format: str, target_format: str) -> bool:
        """Whether ``convert`` needs the shared engine for this pair."""

        return False

    @abc.abstractmethod
    async def convert(
        self,
        data: bytes,
        source_format: str,
        target_format: str,
        settings: CompressionSettings,
        *,
        engine: Optional[Engine] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> bytes:
        """Return the converted bytes or raise a ``ConversionError``."""


async def run_in_workspace(
    engine: Engine,
    data: bytes,
    *,
    source_format: str,
    output_format: str,
    build_args: Callable[[str, str], Sequence[str]],
    progress: Optional[ProgressReporter] = None,
) -> bytes:
    """Write ``data`` into the engine, run one command and read the output.

    File names are unique per call so concurrent jobs sharing the engine
    never see each other's files; both are removed afterwards.
    """

    source_name = engine.scoped_name("source", source_format)
    output_name = engine.scoped_name("output", output_format)
    await engine.write(source_name, data)
    try:
        if progress is not None:
            progress.report(30)
        await engine.exec(build_args(source_name, output_name))
        if progress is not None:
            progress.report(90)
        return await engine.read(output_name)
    finally:
        await engine.delete(source_name)
        await engine.delete(output_name)


__all__ = ["FormatConverter", "run_in_workspace"]
