from __future__ import annotations

import pytest

from convert_hub.core import config as core_config


def test_merge_defaults_overrides_nested_values():
    base = {"queue": {"max_concurrent": 2}, "logging": {"level": "INFO"}}

    core_config.merge_defaults(base, {"queue": {"max_concurrent": 4}})

    assert base == {
        "queue": {"max_concurrent": 4},
        "logging": {"level": "INFO"},
    }


def test_merge_defaults_reports_dotted_unknown_key():
    base = {"engine": {"binary": None}}

    with pytest.raises(core_config.TomlConfigError) as excinfo:
        core_config.merge_defaults(base, {"engine": {"threads": 8}})

    assert "engine.threads" in str(excinfo.value)


def test_merge_defaults_requires_tables_for_tables():
    with pytest.raises(core_config.TomlConfigError):
        core_config.merge_defaults({"engine": {}}, {"engine": "ffmpeg"})


def test_load_toml_errors(tmp_path):
    with pytest.raises(core_config.TomlConfigError):
        core_config.load_toml(tmp_path / "missing.toml")

    broken = tmp_path / "broken.toml"
    broken.write_text("[queue\n", encoding="utf-8")
    with pytest.raises(core_config.TomlConfigError):
        core_config.load_toml(broken)


@pytest.mark.parametrize("value", [True, "2", 1.5, None])
def test_require_int_rejects_non_integers(value):
    with pytest.raises(core_config.TomlConfigError):
        core_config.require_int(value, "queue.max_concurrent")


def test_require_int_enforces_minimum():
    assert core_config.require_int(3, "k", minimum=1) == 3
    with pytest.raises(core_config.TomlConfigError):
        core_config.require_int(0, "k", minimum=1)


def test_require_float_accepts_integers():
    assert core_config.require_float(300, "engine.exec_timeout") == 300.0
    with pytest.raises(core_config.TomlConfigError):
        core_config.require_float(-1, "engine.exec_timeout", minimum=0)


def test_require_bool_and_optional_string():
    assert core_config.require_bool(False, "flag") is False
    with pytest.raises(core_config.TomlConfigError):
        core_config.require_bool("yes", "flag")

    assert core_config.optional_string("  ffmpeg ", "bin") == "ffmpeg"
    assert core_config.optional_string("   ", "bin") is None
    assert core_config.optional_string(None, "bin") is None
    with pytest.raises(core_config.TomlConfigError):
        core_config.optional_string(5, "bin")
