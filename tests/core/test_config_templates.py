from __future__ import annotations

from pathlib import Path

import pytest

from convert_hub.conversion.config import CONFIG_FILENAME
from convert_hub.core import config_templates
from convert_hub.core.config_templates import (
    ConfigTemplate,
    ConfigTemplateError,
)


def test_conversion_template_round_trips_to_disk(tmp_path: Path) -> None:
    template = config_templates.get_template("conversion")
    assert isinstance(template, ConfigTemplate)

    contents = template.read_text()
    for table in ("[paths]", "[queue]", "[conversion]", "[engine]"):
        assert table in contents

    target = tmp_path / "nested" / "convert_hub.toml"
    assert template.write(target) == target
    assert target.read_text(encoding="utf-8") == contents

    with pytest.raises(ConfigTemplateError):
        template.write(target)
    assert template.write(target, overwrite=True) == target


def test_iter_templates_lists_conversion() -> None:
    names = [template.name for template in config_templates.iter_templates()]
    assert names == ["conversion"]


@pytest.mark.parametrize("unknown", ["missing", "", "convert_markdown"])
def test_get_template_unknown_raises(unknown: str) -> None:
    with pytest.raises(ConfigTemplateError):
        config_templates.get_template(unknown)


def test_missing_resource_raises_template_error() -> None:
    template = ConfigTemplate(
        name="ghost",
        filename="ghost.toml",
        destination="ghost.toml",
        description="not shipped",
        package="convert_hub.conversion",
    )

    with pytest.raises(ConfigTemplateError):
        template.read_text()


def test_default_path_matches_loader_filename(tmp_path: Path) -> None:
    template = config_templates.get_template("conversion")

    assert template.default_path(tmp_path) == tmp_path / CONFIG_FILENAME
