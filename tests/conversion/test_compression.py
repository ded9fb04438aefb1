from __future__ import annotations

import pytest

from convert_hub.conversion import compression
from convert_hub.conversion.compression import (
    CompressionLevel,
    CompressionSettings,
    ImageSettings,
    MediaSettings,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("HIGH", CompressionLevel.HIGH),
        (" medium ", CompressionLevel.MEDIUM),
        ("low", CompressionLevel.LOW),
        ("extreme", CompressionLevel.NONE),
        (None, CompressionLevel.NONE),
        (CompressionLevel.LOW, CompressionLevel.LOW),
    ],
)
def test_from_value_is_lenient(raw, expected):
    assert CompressionLevel.from_value(raw) is expected


def test_none_disables_compression_everywhere():
    for target in (".jpg", ".png", ".mp3", ".mp4", ".docx"):
        settings = compression.resolve(target, "none")
        assert settings.enabled is False
        assert settings.quality == 1.0
        assert settings.bitrate is None


def test_quality_decreases_with_level():
    qualities = [
        compression.resolve(".mp4", level).quality
        for level in CompressionLevel
    ]
    assert qualities == sorted(qualities, reverse=True)
    assert len(set(qualities)) == len(qualities)


def test_lossy_images_respect_quality_floor():
    settings = compression.resolve(".jpg", CompressionLevel.HIGH)

    assert isinstance(settings, ImageSettings)
    assert settings.quality >= compression.LOSSY_IMAGE_QUALITY_FLOOR
    assert 1 <= settings.encoder_quality <= 100


def test_lossless_audio_targets_have_no_bitrate():
    for target in compression.LOSSLESS_AUDIO_FORMATS:
        settings = compression.resolve(target, "high")
        assert isinstance(settings, MediaSettings)
        assert settings.bitrate is None


def test_audio_and_video_bitrates():
    assert compression.resolve(".mp3", "low").bitrate == "192k"
    assert compression.resolve(".ogg", "high").bitrate == "96k"
    assert compression.resolve(".mp4", "medium").bitrate == "1500k"
    assert compression.resolve(".webm", "high").bitrate == "800k"


def test_crf_tracks_quality():
    lossless = compression.resolve(".mp4", "none")
    high = compression.resolve(".mp4", "high")

    assert lossless.crf == 18
    assert high.crf > lossless.crf


def test_unknown_targets_get_plain_settings():
    settings = compression.resolve(".xyz", "medium")

    assert type(settings) is CompressionSettings
    assert settings.enabled is True


def test_resolve_is_pure():
    assert compression.resolve(".webp", "low") == compression.resolve(
        ".WEBP", CompressionLevel.LOW
    )
