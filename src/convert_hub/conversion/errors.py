"""Error hierarchy for the conversion engine."""

from __future__ import annotations

from typing import Optional

__all__ = [
    "ConversionError",
    "UnsupportedFormatError",
    "UnsupportedTargetError",
    "EmptyInputError",
    "ConversionFailure",
    "EngineCommandError",
    "EngineLoadError",
]


class ConversionError(RuntimeError):
    """Base class for every error a conversion job can be rejected with."""


class UnsupportedFormatError(ConversionError):
    """Raised when an extension is unknown or no conversion path exists."""


class UnsupportedTargetError(UnsupportedFormatError):
    """Raised when a converter cannot serialize the requested target."""


class EmptyInputError(ConversionError):
    """Raised when the source parses but holds nothing to convert."""


class ConversionFailure(ConversionError):
    """Raised when an underlying transform step fails.

    ``cause`` mirrors ``__cause__`` so callers that only keep the exception
    object (for example a batch summary) can still report the origin.
    """

    def __init__(
        self, message: str, *, cause: Optional[BaseException] = None
    ) -> None:
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class EngineCommandError(ConversionFailure):
    """Raised when an engine command exits non-zero or times out."""


class EngineLoadError(ConversionError):
    """Raised when the shared engine fails to initialize."""
