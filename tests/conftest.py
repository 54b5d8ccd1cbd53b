"""Shared fixtures."""

from pathlib import Path

import pytest

from fluxdiff.config import Config
from fluxdiff.engine import ReleaseDiffEngine
from tests.fakes import FakeGit, FakeHelm


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    return root


@pytest.fixture
def temp_base(tmp_path: Path) -> Path:
    base = tmp_path / "tmp"
    base.mkdir()
    return base


@pytest.fixture
def make_engine(temp_base: Path):
    def _make(git: FakeGit, helm: FakeHelm, **config_values) -> ReleaseDiffEngine:
        config_values.setdefault("target_branch", "main")
        return ReleaseDiffEngine(Config(**config_values), git, helm, temp_base=temp_base)
    return _make
