"""Raster image conversion with Pillow.

HEIC sources are decoded by the shared engine into PNG first; HEIC output
is encoded with pillow-heif.
"""

from __future__ import annotations

import asyncio
import io
from typing import Mapping, Optional

import pillow_heif
from PIL import Image, ImageOps

from ..compression import CompressionSettings, ImageSettings
from ..engine import Engine
from ..errors import ConversionFailure, UnsupportedTargetError
from ..models import ProgressReporter
from ..registry import FormatGroup
from .base import FormatConverter, run_in_workspace

DEFAULT_MAX_EDGE = 4096

ENGINE_DECODE_FORMATS: frozenset[str] = frozenset({".heic"})

_PILLOW_FORMATS: Mapping[str, str] = {
    ".jpeg": "JPEG",
    ".jpg": "JPEG",
    ".png": "PNG",
    ".gif": "GIF",
    ".webp": "WEBP",
    ".bmp": "BMP",
}

_FLATTENED_FORMATS = frozenset({"JPEG", "BMP"})

_PNG_MODES = frozenset({"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"})


def bound_resolution(image: Image.Image, max_edge: int) -> Image.Image:
    """Shrink ``image`` in place so neither edge exceeds ``max_edge``."""

    if max(image.size) > max_edge:
        image.thumbnail((max_edge, max_edge), Image.Resampling.LANCZOS)
    return image


def encode_image(
    image: Image.Image, target_format: str, settings: ImageSettings
) -> bytes:
    buffer = io.BytesIO()
    if target_format == ".heic":
        heif_file = pillow_heif.from_pillow(_ensure_rgb(image, keep_alpha=True))
        heif_file.save(buffer, quality=settings.encoder_quality)
        return buffer.getvalue()

    pillow_format = _PILLOW_FORMATS.get(target_format)
    if pillow_format is None:
        raise UnsupportedTargetError(
            f"Images cannot be converted to '{target_format}'."
        )

    if pillow_format in _FLATTENED_FORMATS:
        image = _flatten(image)
        if pillow_format == "JPEG":
            image.save(
                buffer,
                format="JPEG",
                quality=settings.encoder_quality,
                optimize=settings.enabled,
            )
        else:
            image.save(buffer, format="BMP")
    elif pillow_format == "GIF":
        if image.mode not in ("P", "L"):
            image = _ensure_rgb(image, keep_alpha=False).convert(
                "P", palette=Image.Palette.ADAPTIVE
            )
        image.save(buffer, format="GIF", optimize=settings.enabled)
    elif pillow_format == "WEBP":
        image.save(
            buffer,
            format="WEBP",
            quality=settings.encoder_quality,
            method=6 if settings.enabled else 4,
        )
    else:
        if image.mode not in _PNG_MODES:
            image = _ensure_rgb(image, keep_alpha=True)
        image.save(buffer, format="PNG", optimize=settings.enabled)
    return buffer.getvalue()


def _flatten(image: Image.Image) -> Image.Image:
    """Composite any transparency onto white and return an RGB image."""

    if image.mode in ("RGBA", "LA") or (
        image.mode == "P" and "transparency" in image.info
    ):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB") if image.mode != "RGB" else image


def _ensure_rgb(image: Image.Image, *, keep_alpha: bool) -> Image.Image:
    if keep_alpha and image.mode in ("RGBA", "LA", "PA"):
        return image.convert("RGBA") if image.mode != "RGBA" else image
    if keep_alpha and image.mode == "P" and "transparency" in image.info:
        return image.convert("RGBA")
    return image.convert("RGB") if image.mode != "RGB" else image


def transcode_image(
    data: bytes,
    target_format: str,
    settings: ImageSettings,
    *,
    max_edge: int = DEFAULT_MAX_EDGE,
) -> bytes:
    with Image.open(io.BytesIO(data)) as opened:
        opened.load()
        image = ImageOps.exif_transpose(opened)
        bounded = bound_resolution(image, max_edge)
        return encode_image(bounded, target_format, settings)


class ImageConverter(FormatConverter):
    groups = frozenset({FormatGroup.IMAGE})

    def __init__(self, *, max_edge: int = DEFAULT_MAX_EDGE) -> None:
        self.max_edge = max_edge

    def requires_engine(self, source_format: str, target_format: str) -> bool:
        return source_format in ENGINE_DECODE_FORMATS

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
        if source_format in ENGINE_DECODE_FORMATS:
            if engine is None:
                raise ConversionFailure(
                    f"Decoding '{source_format}' requires the codec engine."
                )
            data = await run_in_workspace(
                engine,
                data,
                source_format=source_format,
                output_format=".png",
                build_args=lambda src, out: ["-i", src, "-frames:v", "1", out],
                progress=progress,
            )
        return await asyncio.to_thread(
            transcode_image,
            data,
            target_format,
            _image_settings(settings),
            max_edge=self.max_edge,
        )


def _image_settings(settings: CompressionSettings) -> ImageSettings:
    if isinstance(settings, ImageSettings):
        return settings
    return ImageSettings(quality=settings.quality, enabled=settings.enabled)


__all__ = [
    "DEFAULT_MAX_EDGE",
    "ENGINE_DECODE_FORMATS",
    "ImageConverter",
    "bound_resolution",
    "encode_image",
    "transcode_image",
]
