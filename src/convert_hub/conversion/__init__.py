"""Public APIs for the file conversion engine."""

from __future__ import annotations

from .compression import CompressionLevel, CompressionSettings, resolve
from .errors import (
    ConversionError,
    ConversionFailure,
    EmptyInputError,
    EngineCommandError,
    EngineLoadError,
    UnsupportedFormatError,
    UnsupportedTargetError,
)
from .registry import (
    FormatGroup,
    SUPPORTED_FORMATS,
    can_convert,
    group_of,
    mime_type_for,
    possible_targets,
)

from .models import Artifact, BatchResult, ConversionJob, ProgressReporter
from .engine import (
    EngineHandle,
    EngineState,
    FFmpegEngine,
    load_ffmpeg_engine,
)
from .queue import ConversionQueue
from .packager import ARCHIVE_FILENAME, BatchPackager, Deliverable

from .config import (
    ConfigOverrides,
    ConvertHubConfig,
    ConvertHubConfigError,
    EngineConfig,
    LoadResult,
    load_config,
)
from .service import (
    BatchReport,
    ConversionRequest,
    ConversionService,
    JobOutcome,
)

__all__ = [
    "CompressionLevel",
    "CompressionSettings",
    "resolve",
    "ConversionError",
    "ConversionFailure",
    "EmptyInputError",
    "EngineCommandError",
    "EngineLoadError",
    "UnsupportedFormatError",
    "UnsupportedTargetError",
    "FormatGroup",
    "SUPPORTED_FORMATS",
    "can_convert",
    "group_of",
    "mime_type_for",
    "possible_targets",
    "Artifact",
    "BatchResult",
    "ConversionJob",
    "ProgressReporter",
    "EngineHandle",
    "EngineState",
    "FFmpegEngine",
    "load_ffmpeg_engine",
    "ConversionQueue",
    "ARCHIVE_FILENAME",
    "BatchPackager",
    "Deliverable",
    "ConfigOverrides",
    "ConvertHubConfig",
    "ConvertHubConfigError",
    "EngineConfig",
    "LoadResult",
    "load_config",
    "BatchReport",
    "ConversionRequest",
    "ConversionService",
    "JobOutcome",
]
