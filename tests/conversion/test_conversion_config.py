from __future__ import annotations

from pathlib import Path

import pytest

from convert_hub.conversion.compression import CompressionLevel
from convert_hub.conversion.config import (
    CONFIG_FILENAME,
    ConfigOverrides,
    ConvertHubConfigError,
    load_config,
    parse_compression,
)


@pytest.fixture
def home(tmp_path) -> Path:
    return tmp_path / "home"


def _env(home: Path, **extra: str) -> dict[str, str]:
    env = {"CONVERT_HUB_DATA_HOME": str(home)}
    env.update({f"CONVERT_HUB_{key}": value for key, value in extra.items()})
    return env


def _write_config(home: Path, body: str) -> Path:
    path = home / "config" / CONFIG_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body, encoding="utf-8")
    return path


def test_defaults_resolve_inside_workspace(home):
    result = load_config(env=_env(home))
    config = result.config

    assert result.config_path is None
    assert config.output_dir == home.resolve() / "converted"
    assert config.max_concurrent == 2
    assert config.compression is CompressionLevel.NONE
    assert config.engine.exec_timeout == 300.0
    assert config.engine.exec_retries == 1
    assert config.engine.binary is None
    assert config.log_level == "INFO"
    assert (home / "engine").is_dir()


def test_workspace_config_file_is_applied(home):
    path = _write_config(
        home,
        """
[paths]
output_dir = "exports"

[queue]
max_concurrent = 4

[conversion]
compression = "High"
max_image_edge = 1024

[engine]
binary = "/opt/ffmpeg/bin/ffmpeg"
exec_timeout = 0
release_when_idle = true

[logging]
level = "debug"
""",
    )

    result = load_config(env=_env(home))
    config = result.config

    assert result.config_path.resolve() == path.resolve()
    assert config.output_dir == (home / "exports").resolve()
    assert config.max_concurrent == 4
    assert config.compression is CompressionLevel.HIGH
    assert config.max_image_edge == 1024
    assert config.engine.binary == "/opt/ffmpeg/bin/ffmpeg"
    assert config.engine.exec_timeout is None
    assert config.engine.release_when_idle is True
    assert config.log_level == "DEBUG"


def test_environment_beats_file_and_cli_beats_environment(home, tmp_path):
    _write_config(
        home,
        '[queue]\nmax_concurrent = 4\n[conversion]\ncompression = "low"\n',
    )
    env = _env(
        home,
        MAX_CONCURRENT="3",
        COMPRESSION="medium",
        LOG_LEVEL="warning",
        FFMPEG="/usr/local/bin/ffmpeg",
    )

    from_env = load_config(env=env).config
    assert from_env.max_concurrent == 3
    assert from_env.compression is CompressionLevel.MEDIUM
    assert from_env.log_level == "WARNING"
    assert from_env.engine.binary == "/usr/local/bin/ffmpeg"

    overrides = ConfigOverrides(
        output_dir=tmp_path / "cli-out",
        max_concurrent=1,
        compression=CompressionLevel.HIGH,
        log_level="error",
    )
    from_cli = load_config(env=env, overrides=overrides).config
    assert from_cli.output_dir == (tmp_path / "cli-out").resolve()
    assert from_cli.max_concurrent == 1
    assert from_cli.compression is CompressionLevel.HIGH
    assert from_cli.log_level == "ERROR"


def test_explicit_config_path_is_used(home, tmp_path):
    custom = tmp_path / "custom.toml"
    custom.write_text("[queue]\nmax_concurrent = 5\n", encoding="utf-8")

    result = load_config(env=_env(home), config_path=custom)

    assert result.config_path == custom
    assert result.config.max_concurrent == 5


def test_missing_explicit_config_raises(home, tmp_path):
    with pytest.raises(ConvertHubConfigError, match="not found"):
        load_config(env=_env(home), config_path=tmp_path / "missing.toml")

    env = _env(home)
    env["CONVERT_HUB_CONFIG"] = str(tmp_path / "also-missing.toml")
    with pytest.raises(ConvertHubConfigError, match="not found"):
        load_config(env=env)


@pytest.mark.parametrize(
    "body, message",
    [
        ("[queue]\nworkers = 2\n", "Unknown configuration key"),
        ("[queue]\nmax_concurrent = 0\n", "max_concurrent"),
        ('[conversion]\ncompression = "extreme"\n', "extreme"),
        ('[engine]\nexec_timeout = "soon"\n', "exec_timeout"),
        ("[logging]\nlevel = ''\n", "logging.level"),
        ("[queue\n", "parse"),
    ],
)
def test_invalid_config_values_raise(home, body, message):
    _write_config(home, body)

    with pytest.raises(ConvertHubConfigError, match=message):
        load_config(env=_env(home))


def test_non_integer_environment_value_raises(home):
    with pytest.raises(ConvertHubConfigError, match="MAX_CONCURRENT"):
        load_config(env=_env(home, MAX_CONCURRENT="many"))


def test_parse_compression_is_strict():
    assert parse_compression(" LOW ") is CompressionLevel.LOW
    assert parse_compression(CompressionLevel.HIGH) is CompressionLevel.HIGH
    with pytest.raises(ConvertHubConfigError):
        parse_compression("maximum")
    with pytest.raises(ConvertHubConfigError):
        parse_compression(3)
