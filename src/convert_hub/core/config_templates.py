"""Packaged configuration templates for convert-hub commands.

Each template ships inside the package that reads it and knows the file
name it is installed under in the workspace ``config`` directory.
"""

from __future__ import annotations

from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Iterable

from .config import TomlConfigError, write_toml_template

__all__ = [
    "ConfigTemplate",
    "ConfigTemplateError",
    "get_template",
    "iter_templates",
]


class ConfigTemplateError(RuntimeError):
    """Raised when a requested configuration template is not available."""


@dataclass(frozen=True)
class ConfigTemplate:
    """A TOML template shipped as package data.

    ``filename`` is the resource inside ``package``; ``destination`` is the
    name the rendered file takes in the workspace config directory.
    """

    name: str
    filename: str
    destination: str
    description: str
    package: str

    def read_text(self) -> str:
        """Return the packaged template as UTF-8 text."""

        try:
            resource = resources.files(self.package).joinpath(self.filename)
            return resource.read_text(encoding="utf-8")
        except (FileNotFoundError, ModuleNotFoundError) as exc:
            raise ConfigTemplateError(
                f"Template '{self.name}' resource not found in "
                f"'{self.package}'."
            ) from exc

    def default_path(self, config_dir: Path) -> Path:
        """Where ``config init`` writes this template inside a workspace."""

        return config_dir / self.destination

    def write(
        self, path: Path, *, overwrite: bool = False, mode: int = 0o600
    ) -> Path:
        """Write the template to ``path``; refuses to clobber by default."""

        try:
            return write_toml_template(
                path,
                template=self.read_text(),
                overwrite=overwrite,
                mode=mode,
            )
        except TomlConfigError as exc:
            raise ConfigTemplateError(str(exc)) from exc


_TEMPLATES: dict[str, ConfigTemplate] = {
    "conversion": ConfigTemplate(
        name="conversion",
        filename="template.toml",
        destination="convert_hub.toml",
        description="Defaults for the convert-hub conversion engine.",
        package="convert_hub.conversion",
    ),
}


def get_template(name: str) -> ConfigTemplate:
    """Return the template named ``name`` or raise an error."""

    try:
        return _TEMPLATES[name]
    except KeyError as exc:
        raise ConfigTemplateError(f"Unknown config template '{name}'.") from exc


def iter_templates() -> Iterable[ConfigTemplate]:
    return tuple(_TEMPLATES.values())
