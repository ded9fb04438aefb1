from __future__ import annotations

import asyncio
import io

import pytest
from PIL import Image

from convert_hub.conversion.compression import ImageSettings, resolve
from convert_hub.conversion.converters.image import (
    ImageConverter,
    bound_resolution,
    encode_image,
    transcode_image,
)
from convert_hub.conversion.errors import (
    ConversionFailure,
    UnsupportedTargetError,
)
from convert_hub.conversion.models import ProgressReporter
from fixtures import FakeEngine


def _png(size=(40, 30), color=(200, 30, 30, 255), mode="RGBA") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def _open(data: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(data))
    image.load()
    return image


def test_transparent_png_to_jpeg_is_flattened_on_white():
    source = _png(color=(0, 0, 0, 0))

    produced = transcode_image(source, ".jpg", resolve(".jpg", "none"))

    image = _open(produced)
    assert image.format == "JPEG"
    assert image.mode == "RGB"
    assert all(channel > 240 for channel in image.getpixel((5, 5)))


def test_bound_resolution_keeps_aspect_ratio():
    image = Image.new("RGB", (5000, 100))

    bounded = bound_resolution(image, 1000)

    assert bounded.size == (1000, 20)


def test_small_images_are_not_upscaled():
    image = Image.new("RGB", (20, 10))

    assert bound_resolution(image, 1000).size == (20, 10)


def test_gif_output_uses_a_palette():
    produced = transcode_image(_png(), ".gif", resolve(".gif", "low"))

    image = _open(produced)
    assert image.format == "GIF"
    assert image.mode == "P"


def test_higher_compression_shrinks_lossy_output():
    noisy = Image.effect_noise((256, 256), 80).convert("RGB")
    buffer = io.BytesIO()
    noisy.save(buffer, format="PNG")
    source = buffer.getvalue()

    full = transcode_image(source, ".webp", resolve(".webp", "none"))
    small = transcode_image(source, ".webp", resolve(".webp", "high"))

    assert _open(small).format == "WEBP"
    assert len(small) < len(full)


def test_bmp_and_png_targets():
    settings = ImageSettings(quality=1.0, enabled=False)
    image = Image.new("LA", (4, 4))

    assert _open(encode_image(image, ".bmp", settings)).format == "BMP"
    assert _open(encode_image(image, ".png", settings)).format == "PNG"


def test_cmyk_jpeg_converts_to_png():
    buffer = io.BytesIO()
    Image.new("CMYK", (8, 8), (0, 128, 128, 0)).save(buffer, format="JPEG")

    produced = transcode_image(
        buffer.getvalue(), ".png", resolve(".png", "none")
    )

    image = _open(produced)
    assert image.format == "PNG"
    assert image.mode == "RGB"
    assert image.size == (8, 8)


def test_heic_target_is_encoded_with_pillow_heif():
    produced = transcode_image(
        _png(mode="RGB", color=(10, 120, 200)),
        ".heic",
        resolve(".heic", "medium"),
    )

    assert produced[4:8] == b"ftyp"


def test_unknown_target_is_rejected():
    with pytest.raises(UnsupportedTargetError):
        encode_image(
            Image.new("RGB", (2, 2)),
            ".tiff",
            ImageSettings(quality=1.0, enabled=False),
        )


def test_converter_bounds_working_resolution():
    converter = ImageConverter(max_edge=64)

    produced = asyncio.run(
        converter.convert(
            _png(size=(640, 320)), ".png", ".jpeg", resolve(".jpeg", "low")
        )
    )

    assert _open(produced).size == (64, 32)


def test_heic_source_is_decoded_by_the_engine():
    decoded = _png(size=(12, 8))
    engine = FakeEngine(lambda args, data: decoded)
    converter = ImageConverter()
    seen: list[int] = []

    produced = asyncio.run(
        converter.convert(
            b"fake-heic",
            ".heic",
            ".png",
            resolve(".png", "none"),
            engine=engine,
            progress=ProgressReporter(seen.append),
        )
    )

    assert converter.requires_engine(".heic", ".png") is True
    assert converter.requires_engine(".png", ".heic") is False
    assert _open(produced).size == (12, 8)
    (command,) = engine.commands
    assert command[-3:-1] == ["-frames:v", "1"]
    assert command[-1].endswith("-output.png")
    assert engine.files == {}
    assert seen == [30, 90]


def test_heic_source_without_engine_fails():
    with pytest.raises(ConversionFailure):
        asyncio.run(
            ImageConverter().convert(
                b"fake-heic", ".heic", ".png", resolve(".png", "none")
            )
        )
