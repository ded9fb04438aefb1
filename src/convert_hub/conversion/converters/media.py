"""Audio and video conversion through the shared ffmpeg engine."""

from __future__ import annotations

import re
from typing import Optional

from ..compression import CompressionSettings, MediaSettings
from ..engine import Engine
from ..errors import ConversionFailure, UnsupportedTargetError
from ..models import ProgressReporter
from ..registry import FormatGroup, group_of
from .base import FormatConverter, run_in_workspace
from .image import ImageConverter

_H264_CONTAINERS = frozenset({".mp4", ".mov", ".mkv"})
_FASTSTART_CONTAINERS = frozenset({".mp4", ".mov"})
_WAVEFORM_SIZE = "1280x320"
_BITRATE = re.compile(r"^(\d+)([kKmM]?)$")


def audio_args(
    source: str, output: str, settings: MediaSettings
) -> list[str]:
    args = ["-i", source, "-vn", "-map_metadata", "0"]
    if settings.bitrate:
        args += ["-b:a", settings.bitrate]
    args.append(output)
    return args


def video_args(
    source: str, output: str, target_format: str, settings: MediaSettings
) -> list[str]:
    args = ["-i", source]
    if target_format == ".webm":
        # VP9 constrained quality; "-b:v 0" selects pure CRF mode.
        vp9_crf = round(15 + (1.0 - settings.quality) * 60)
        args += ["-c:v", "libvpx-vp9", "-crf", str(vp9_crf)]
        args += ["-b:v", settings.bitrate or "0", "-c:a", "libopus"]
    else:
        args += ["-c:v", "libx264", "-preset", "medium"]
        args += ["-crf", str(settings.crf), "-pix_fmt", "yuv420p"]
        if settings.bitrate:
            args += ["-maxrate", settings.bitrate]
            args += ["-bufsize", _double_bitrate(settings.bitrate)]
        args += ["-c:a", "aac"]
    if target_format in _FASTSTART_CONTAINERS:
        args += ["-movflags", "+faststart"]
    args.append(output)
    return args


def still_args(source: str, output: str, source_group: FormatGroup) -> list[str]:
    """Pick a representative frame, or draw the waveform of an audio file."""

    if source_group is FormatGroup.AUDIO:
        return [
            "-i",
            source,
            "-filter_complex",
            f"showwavespic=s={_WAVEFORM_SIZE}",
            "-frames:v",
            "1",
            output,
        ]
    return ["-i", source, "-vf", "thumbnail", "-frames:v", "1", output]


def _double_bitrate(bitrate: str) -> str:
    match = _BITRATE.match(bitrate.strip())
    if match is None:
        return bitrate
    return f"{int(match.group(1)) * 2}{match.group(2)}"


def _media_settings(settings: CompressionSettings) -> MediaSettings:
    if isinstance(settings, MediaSettings):
        return settings
    return MediaSettings(
        quality=settings.quality,
        enabled=settings.enabled,
        bitrate=settings.bitrate,
    )


class MediaConverter(FormatConverter):
    """Re-encode audio/video; stills are handed on to the image family."""

    groups = frozenset({FormatGroup.AUDIO, FormatGroup.VIDEO})

    def __init__(self, images: ImageConverter) -> None:
        self._images = images

    def requires_engine(self, source_format: str, target_format: str) -> bool:
        return True

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
        if engine is None:
            raise ConversionFailure(
                "Media conversion requires the codec engine."
            )

        source_group = group_of(source_format)
        target_group = group_of(target_format)

        if target_group is FormatGroup.IMAGE:
            frame = await run_in_workspace(
                engine,
                data,
                source_format=source_format,
                output_format=".png",
                build_args=lambda src, out: still_args(src, out, source_group),
                progress=progress,
            )
            return await self._images.convert(
                frame, ".png", target_format, settings, engine=engine
            )

        media = _media_settings(settings)
        if target_group is FormatGroup.AUDIO:
            build = lambda src, out: audio_args(src, out, media)  # noqa: E731
        elif target_group is FormatGroup.VIDEO:
            build = lambda src, out: video_args(  # noqa: E731
                src, out, target_format, media
            )
        else:
            raise UnsupportedTargetError(
                f"Media cannot be converted to '{target_format}'."
            )

        return await run_in_workspace(
            engine,
            data,
            source_format=source_format,
            output_format=target_format,
            build_args=build,
            progress=progress,
        )


__all__ = [
    "MediaConverter",
    "audio_args",
    "still_args",
    "video_args",
]
