from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

TESTS_DIR = Path(__file__).resolve().parent
ROOT = TESTS_DIR.parent
# tests/ for the fixtures package, src/ for running without an install.
for extra in (TESTS_DIR, ROOT / "src"):
    path_str = str(extra)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from fixtures import CountingLoader, FakeEngine  # noqa: E402


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def counting_loader(fake_engine: FakeEngine) -> CountingLoader:
    return CountingLoader(fake_engine)


@pytest.fixture
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the workspace at tmp and drop any CONVERT_HUB_* variables."""

    for key in list(os.environ):
        if key.startswith("CONVERT_HUB_"):
            monkeypatch.delenv(key)
    home = tmp_path / "data-home"
    monkeypatch.setenv("CONVERT_HUB_DATA_HOME", str(home))
    return home
