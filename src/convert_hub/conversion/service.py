"""Orchestrate conversions: validation, queueing, engine leases, packaging."""

from __future__ import annotations

import asyncio
import functools
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Optional, Sequence, Union

from . import compression
from .compression import CompressionLevel
from .config import ConvertHubConfig
from .converters import ConverterTable, build_converters
from .engine import EngineHandle, load_ffmpeg_engine
from .errors import ConversionError, ConversionFailure, UnsupportedFormatError
from .models import (
    Artifact,
    BatchResult,
    ConversionJob,
    ProgressReporter,
    ProgressSink,
)
from .packager import BatchPackager, Deliverable
from .queue import DEFAULT_MAX_CONCURRENT, ConversionQueue
from .registry import (
    can_convert,
    cross_group_targets,
    extension_of,
    group_of,
    mime_type_for,
    normalize_extension,
)
from .registry import possible_targets as _same_group_targets

_DEFAULT_SCRATCH_ROOT = Path(tempfile.gettempdir()) / "convert-hub-engine"


@dataclass(frozen=True)
class ConversionRequest:
    """One file the caller wants converted."""

    data: bytes
    filename: str
    target_format: str
    compression: Union[CompressionLevel, str] = CompressionLevel.NONE
    on_progress: Optional[ProgressSink] = None


@dataclass(frozen=True)
class JobOutcome:
    filename: str
    artifact: Optional[Artifact] = None
    error: Optional[BaseException] = None

    @property
    def succeeded(self) -> bool:
        return self.artifact is not None

    @property
    def reason(self) -> Optional[str]:
        if self.error is None:
            return None
        if isinstance(self.error, asyncio.CancelledError):
            return "Cancelled before it started."
        return str(self.error) or type(self.error).__name__


@dataclass(frozen=True)
class BatchReport:
    """Per-file outcomes for a batch, in submission order."""

    outcomes: tuple[JobOutcome, ...]

    @property
    def success_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.succeeded)

    @property
    def failure_count(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.succeeded)

    @property
    def exit_code(self) -> int:
        return 1 if self.failure_count else 0

    @property
    def batch_result(self) -> BatchResult:
        return BatchResult(
            artifacts=tuple(
                outcome.artifact
                for outcome in self.outcomes
                if outcome.artifact is not None
            )
        )


def output_filename(source_filename: str, target_format: str) -> str:
    """Suggest ``<source stem><target extension>`` for a produced file."""

    stem = PurePath(source_filename).stem or "converted"
    return f"{stem}{normalize_extension(target_format)}"


class ConversionService:
    """Front door for conversions.

    Owns the converter table, the shared :class:`EngineHandle` and the
    :class:`ConversionQueue`. Use as an async context manager so the queue
    is drained and the engine unloaded on exit.
    """

    def __init__(
        self,
        *,
        converters: Optional[ConverterTable] = None,
        engine: Optional[EngineHandle] = None,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        packager: Optional[BatchPackager] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self._converters = converters or build_converters()
        self._engine = engine or EngineHandle(
            functools.partial(
                load_ffmpeg_engine,
                scratch_root=_DEFAULT_SCRATCH_ROOT,
                logger=self._logger,
            ),
            logger=self._logger,
        )
        self._queue = ConversionQueue(
            self._run_job, max_concurrent=max_concurrent, logger=self._logger
        )
        self._packager = packager or BatchPackager()

    @classmethod
    def from_config(
        cls,
        config: ConvertHubConfig,
        *,
        engine_dir: Path,
        logger: Optional[logging.Logger] = None,
    ) -> "ConversionService":
        """Build a service whose engine scratch space lives in ``engine_dir``."""

        logger = logger or logging.getLogger(__name__)
        engine_options = config.engine
        loader = functools.partial(
            load_ffmpeg_engine,
            scratch_root=engine_dir,
            binary=engine_options.binary,
            exec_timeout=engine_options.exec_timeout,
            exec_retries=engine_options.exec_retries,
            logger=logger,
        )
        return cls(
            converters=build_converters(max_image_edge=config.max_image_edge),
            engine=EngineHandle(
                loader,
                release_when_idle=engine_options.release_when_idle,
                logger=logger,
            ),
            max_concurrent=config.max_concurrent,
            logger=logger,
        )

    @property
    def queue(self) -> ConversionQueue:
        return self._queue

    @property
    def engine(self) -> EngineHandle:
        return self._engine

    def possible_targets(self, filename: str) -> list[str]:
        """Return the extensions ``filename`` can be converted to.

        Same-family targets come first, then cross-family ones such as an
        audio track from a video or a still from any media file.
        """

        source = extension_of(filename)
        return _same_group_targets(source) + cross_group_targets(source)

    def build_job(
        self,
        data: bytes,
        filename: str,
        target_format: str,
        compression_level: Union[CompressionLevel, str] = CompressionLevel.NONE,
        on_progress: Optional[ProgressSink] = None,
    ) -> ConversionJob:
        """Validate a request and turn it into a queueable job.

        Raises :class:`UnsupportedFormatError` before anything is queued.
        """

        source = extension_of(filename)
        target = normalize_extension(target_format or "")
        if group_of(source) is None:
            raise UnsupportedFormatError(
                f"Unsupported file type '{source or filename}'."
            )
        if not can_convert(source, target):
            raise UnsupportedFormatError(
                f"No conversion path from '{source}' to '{target or '?'}'."
            )
        return ConversionJob(
            key=filename,
            data=data,
            source_format=source,
            target_format=target,
            compression=CompressionLevel.from_value(compression_level),
            progress=ProgressReporter(on_progress),
        )

    async def submit(
        self,
        data: bytes,
        filename: str,
        target_format: str,
        compression_level: Union[CompressionLevel, str] = CompressionLevel.NONE,
        on_progress: Optional[ProgressSink] = None,
    ) -> Artifact:
        """Queue one file and wait for its artifact."""

        job = self.build_job(
            data, filename, target_format, compression_level, on_progress
        )
        return await self._queue.submit(job)

    async def convert_batch(
        self, requests: Sequence[ConversionRequest]
    ) -> BatchReport:
        """Convert every request; one failure never aborts the others."""

        self._logger.info(
            "Starting conversion batch", extra={"file_count": len(requests)}
        )
        outcomes: list[Optional[JobOutcome]] = [None] * len(requests)
        queued: list[tuple[int, str, asyncio.Future[Artifact]]] = []
        for index, request in enumerate(requests):
            try:
                job = self.build_job(
                    request.data,
                    request.filename,
                    request.target_format,
                    request.compression,
                    request.on_progress,
                )
            except ConversionError as exc:
                self._logger.error(
                    "Rejected conversion request",
                    extra={"job": request.filename, "reason": str(exc)},
                )
                outcomes[index] = JobOutcome(request.filename, error=exc)
                continue
            queued.append((index, request.filename, self._queue.submit(job)))

        results = await asyncio.gather(
            *(future for _, _, future in queued), return_exceptions=True
        )
        for (index, filename, _), result in zip(queued, results):
            if isinstance(result, BaseException):
                outcomes[index] = JobOutcome(filename, error=result)
            else:
                outcomes[index] = JobOutcome(filename, artifact=result)

        report = BatchReport(
            outcomes=tuple(outcome for outcome in outcomes if outcome)
        )
        self._logger.info(
            "Completed conversion batch",
            extra={
                "success_count": report.success_count,
                "failure_count": report.failure_count,
            },
        )
        return report

    def package(
        self, report: Union[BatchReport, BatchResult]
    ) -> Optional[Deliverable]:
        if isinstance(report, BatchReport):
            report = report.batch_result
        return self._packager.package(report)

    async def aclose(self) -> None:
        await self._queue.aclose()
        await self._engine.shutdown()

    async def __aenter__(self) -> "ConversionService":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _run_job(self, job: ConversionJob) -> Artifact:
        job.progress.report(10)
        group = group_of(job.source_format)
        converter = self._converters[group]
        settings = compression.resolve(job.target_format, job.compression)
        try:
            if converter.requires_engine(job.source_format, job.target_format):
                async with self._engine.lease() as engine:
                    data = await converter.convert(
                        job.data,
                        job.source_format,
                        job.target_format,
                        settings,
                        engine=engine,
                        progress=job.progress,
                    )
            else:
                data = await converter.convert(
                    job.data,
                    job.source_format,
                    job.target_format,
                    settings,
                    progress=job.progress,
                )
        except ConversionError:
            job.progress.fail()
            raise
        except Exception as exc:
            job.progress.fail()
            raise ConversionFailure(
                f"Failed to convert {job.key}: {exc}", cause=exc
            ) from exc

        job.progress.report(100)
        return Artifact(
            data=data,
            filename=output_filename(job.key, job.target_format),
            mime_type=mime_type_for(job.target_format),
        )


__all__ = [
    "BatchReport",
    "ConversionRequest",
    "ConversionService",
    "JobOutcome",
    "output_filename",
]
