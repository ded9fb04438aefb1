"""Configuration loader for the conversion engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, MutableMapping, Optional

from convert_hub.core import config as core_config
from convert_hub.core import workspace as workspace_mod

from .compression import CompressionLevel
from .converters.image import DEFAULT_MAX_EDGE
from .queue import DEFAULT_MAX_CONCURRENT

CONFIG_FILENAME = "convert_hub.toml"
CONFIG_ENV = "CONVERT_HUB_CONFIG"
ENV_PREFIX = "CONVERT_HUB_"

_DEFAULT_EXEC_TIMEOUT = 300.0
_DEFAULT_EXEC_RETRIES = 1
_DEFAULT_LOG_LEVEL = "INFO"


class ConvertHubConfigError(RuntimeError):
    """Raised when configuration parsing or validation fails."""


@dataclass(frozen=True)
class EngineConfig:
    """How to find and drive ffmpeg.

    ``exec_timeout`` of ``None`` disables the per-command timeout.
    """

    binary: Optional[str] = None
    exec_timeout: Optional[float] = _DEFAULT_EXEC_TIMEOUT
    exec_retries: int = _DEFAULT_EXEC_RETRIES
    release_when_idle: bool = False


@dataclass(frozen=True)
class ConvertHubConfig:
    """Fully resolved configuration for a conversion run."""

    output_dir: Path
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    compression: CompressionLevel = CompressionLevel.NONE
    max_image_edge: int = DEFAULT_MAX_EDGE
    engine: EngineConfig = field(default_factory=EngineConfig)
    log_level: str = _DEFAULT_LOG_LEVEL


@dataclass(frozen=True)
class ConfigOverrides:
    """CLI-sourced overrides applied on top of file/env options."""

    output_dir: Optional[Path] = None
    max_concurrent: Optional[int] = None
    compression: Optional[CompressionLevel] = None
    log_level: Optional[str] = None


@dataclass(frozen=True)
class LoadResult:
    config: ConvertHubConfig
    layout: workspace_mod.WorkspaceLayout
    config_path: Optional[Path]


def load_config(
    *,
    config_path: Optional[Path] = None,
    overrides: Optional[ConfigOverrides] = None,
    env: Optional[Mapping[str, str]] = None,
    workspace_path: Optional[Path] = None,
) -> LoadResult:
    """Load configuration applying precedence CLI > env > TOML > defaults."""

    overrides = overrides or ConfigOverrides()
    env_map = os.environ if env is None else env

    try:
        layout = workspace_mod.ensure_workspace(env=env_map, path=workspace_path)
    except workspace_mod.WorkspaceError as exc:
        raise ConvertHubConfigError(str(exc)) from exc

    requested_path = _resolve_config_path(
        config_path=config_path,
        env_map=env_map,
        default_path=layout.path_for("config") / CONFIG_FILENAME,
    )

    table = _default_table()
    loaded_path: Optional[Path] = None
    if requested_path.exists():
        loaded_path = requested_path
        try:
            core_config.merge_defaults(
                table, core_config.load_toml(requested_path)
            )
        except core_config.TomlConfigError as exc:
            raise ConvertHubConfigError(str(exc)) from exc
    elif config_path is not None or (env_map.get(CONFIG_ENV) or "").strip():
        raise ConvertHubConfigError(f"Config file not found: {requested_path}")

    try:
        config = _build_config(table, overrides, env_map, layout)
    except core_config.TomlConfigError as exc:
        raise ConvertHubConfigError(str(exc)) from exc
    return LoadResult(config=config, layout=layout, config_path=loaded_path)


def _build_config(
    table: Mapping[str, Mapping[str, object]],
    overrides: ConfigOverrides,
    env_map: Mapping[str, str],
    layout: workspace_mod.WorkspaceLayout,
) -> ConvertHubConfig:
    output_dir = _resolve_output_dir(
        _pick_first(
            overrides.output_dir,
            _env_path(env_map, "OUTPUT_DIR"),
            _file_path(table["paths"]["output_dir"]),
        ),
        layout=layout,
    )

    max_concurrent = core_config.require_int(
        _pick_first(
            overrides.max_concurrent,
            _env_int(env_map, "MAX_CONCURRENT"),
            table["queue"]["max_concurrent"],
        ),
        "queue.max_concurrent",
        minimum=1,
    )

    compression = _pick_first(
        overrides.compression,
        _env_string(env_map, "COMPRESSION"),
        table["conversion"]["compression"],
    )

    max_image_edge = core_config.require_int(
        table["conversion"]["max_image_edge"],
        "conversion.max_image_edge",
        minimum=16,
    )

    engine_table = table["engine"]
    timeout = core_config.require_float(
        engine_table["exec_timeout"], "engine.exec_timeout", minimum=0
    )
    engine = EngineConfig(
        binary=_pick_first(
            _env_string(env_map, "FFMPEG"),
            core_config.optional_string(engine_table["binary"], "engine.binary"),
        ),
        exec_timeout=timeout or None,
        exec_retries=core_config.require_int(
            engine_table["exec_retries"], "engine.exec_retries", minimum=0
        ),
        release_when_idle=core_config.require_bool(
            engine_table["release_when_idle"], "engine.release_when_idle"
        ),
    )

    log_level = _pick_first(
        overrides.log_level,
        _env_string(env_map, "LOG_LEVEL"),
        table["logging"]["level"],
    )
    if not isinstance(log_level, str) or not log_level.strip():
        raise ConvertHubConfigError("logging.level must be a non-empty string.")

    return ConvertHubConfig(
        output_dir=output_dir,
        max_concurrent=max_concurrent,
        compression=parse_compression(compression),
        max_image_edge=max_image_edge,
        engine=engine,
        log_level=log_level.strip().upper(),
    )


def parse_compression(value: object) -> CompressionLevel:
    """Strict counterpart of ``CompressionLevel.from_value`` for config input."""

    if isinstance(value, CompressionLevel):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        for member in CompressionLevel:
            if member.value == normalized:
                return member
    expected = ", ".join(member.value for member in CompressionLevel)
    raise ConvertHubConfigError(
        f"Unknown compression level '{value}'. Expected one of: {expected}."
    )


def _default_table() -> MutableMapping[str, MutableMapping[str, object]]:
    return {
        "paths": {"output_dir": None},
        "queue": {"max_concurrent": DEFAULT_MAX_CONCURRENT},
        "conversion": {
            "compression": CompressionLevel.NONE.value,
            "max_image_edge": DEFAULT_MAX_EDGE,
        },
        "engine": {
            "binary": None,
            "exec_timeout": _DEFAULT_EXEC_TIMEOUT,
            "exec_retries": _DEFAULT_EXEC_RETRIES,
            "release_when_idle": False,
        },
        "logging": {"level": _DEFAULT_LOG_LEVEL},
    }


def _resolve_config_path(
    *,
    config_path: Optional[Path],
    env_map: Mapping[str, str],
    default_path: Path,
) -> Path:
    if config_path is not None:
        return config_path.expanduser()
    env_candidate = (env_map.get(CONFIG_ENV) or "").strip()
    if env_candidate:
        return Path(env_candidate).expanduser()
    return default_path


def _resolve_output_dir(
    candidate: Optional[Path], *, layout: workspace_mod.WorkspaceLayout
) -> Path:
    if candidate is None:
        return layout.path_for("converted")
    candidate = candidate.expanduser()
    if not candidate.is_absolute():
        return (layout.home / candidate).resolve()
    return candidate.resolve()


def _file_path(value: object) -> Optional[Path]:
    raw = core_config.optional_string(value, "paths.output_dir")
    return Path(raw) if raw else None


def _env_string(env_map: Mapping[str, str], key: str) -> Optional[str]:
    raw = env_map.get(f"{ENV_PREFIX}{key}")
    if raw is None:
        return None
    return raw.strip() or None


def _env_path(env_map: Mapping[str, str], key: str) -> Optional[Path]:
    raw = _env_string(env_map, key)
    return Path(raw) if raw else None


def _env_int(env_map: Mapping[str, str], key: str) -> Optional[int]:
    raw = _env_string(env_map, key)
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConvertHubConfigError(
            f"{ENV_PREFIX}{key} must be an integer, got '{raw}'."
        ) from exc


def _pick_first(*candidates):
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


__all__ = [
    "CONFIG_ENV",
    "CONFIG_FILENAME",
    "ConfigOverrides",
    "ConvertHubConfig",
    "ConvertHubConfigError",
    "EngineConfig",
    "LoadResult",
    "load_config",
    "parse_compression",
]
