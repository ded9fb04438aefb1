"""Map a (target format, compression level) pair to codec parameters."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Union

from .registry import FormatGroup, group_of, normalize_extension


class CompressionLevel(Enum):
    """User-facing compression levels, weakest first."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_value(
        cls, value: Union["CompressionLevel", str, None]
    ) -> "CompressionLevel":
        """Parse ``value`` leniently; anything unrecognised means NONE."""

        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return cls.NONE
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return cls.NONE


@dataclass(frozen=True)
class CompressionSettings:
    """Resolved parameters for targets without codec knobs."""

    quality: float
    enabled: bool
    bitrate: Optional[str] = None


@dataclass(frozen=True)
class ImageSettings(CompressionSettings):
    """Raster encode settings; ``quality`` feeds lossy encoders."""

    @property
    def encoder_quality(self) -> int:
        return max(1, min(100, round(self.quality * 100)))


@dataclass(frozen=True)
class MediaSettings(CompressionSettings):
    """Audio/video encode settings; ``bitrate`` is an ffmpeg rate string."""

    @property
    def crf(self) -> int:
        # 1.0 -> 18 (visually lossless) ... 0.6 -> 34
        return round(18 + (1.0 - self.quality) * 40)


_QUALITY: Mapping[CompressionLevel, float] = {
    CompressionLevel.NONE: 1.0,
    CompressionLevel.LOW: 0.9,
    CompressionLevel.MEDIUM: 0.75,
    CompressionLevel.HIGH: 0.6,
}

LOSSY_IMAGE_FORMATS: frozenset[str] = frozenset(
    {".jpeg", ".jpg", ".webp", ".heic"}
)
LOSSY_IMAGE_QUALITY_FLOOR = 0.5

LOSSLESS_AUDIO_FORMATS: frozenset[str] = frozenset({".wav", ".flac"})

_AUDIO_BITRATES: Mapping[CompressionLevel, Optional[str]] = {
    CompressionLevel.NONE: None,
    CompressionLevel.LOW: "192k",
    CompressionLevel.MEDIUM: "128k",
    CompressionLevel.HIGH: "96k",
}

_VIDEO_BITRATES: Mapping[CompressionLevel, Optional[str]] = {
    CompressionLevel.NONE: None,
    CompressionLevel.LOW: "2500k",
    CompressionLevel.MEDIUM: "1500k",
    CompressionLevel.HIGH: "800k",
}


def resolve(
    target_format: str,
    level: Union[CompressionLevel, str, None],
) -> CompressionSettings:
    """Return the settings for ``target_format`` at ``level``.

    Pure and total: unknown levels behave like ``none`` and unknown formats
    get plain :class:`CompressionSettings`.
    """

    parsed = CompressionLevel.from_value(level)
    target = normalize_extension(target_format or "")
    quality = _QUALITY[parsed]
    enabled = parsed is not CompressionLevel.NONE
    group = group_of(target)

    if group is FormatGroup.IMAGE:
        if target in LOSSY_IMAGE_FORMATS:
            quality = max(quality, LOSSY_IMAGE_QUALITY_FLOOR)
        return ImageSettings(quality=quality, enabled=enabled)

    if group is FormatGroup.AUDIO:
        bitrate = None
        if target not in LOSSLESS_AUDIO_FORMATS:
            bitrate = _AUDIO_BITRATES[parsed]
        return MediaSettings(quality=quality, enabled=enabled, bitrate=bitrate)

    if group is FormatGroup.VIDEO:
        return MediaSettings(
            quality=quality,
            enabled=enabled,
            bitrate=_VIDEO_BITRATES[parsed],
        )

    return CompressionSettings(quality=quality, enabled=enabled)


__all__ = [
    "CompressionLevel",
    "CompressionSettings",
    "ImageSettings",
    "LOSSLESS_AUDIO_FORMATS",
    "LOSSY_IMAGE_FORMATS",
    "LOSSY_IMAGE_QUALITY_FLOOR",
    "MediaSettings",
    "resolve",
]
