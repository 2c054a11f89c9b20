"""Shared fixtures for CLI tests.

Every CLI test runs inside its own working directory so that the default
state file and components directory land in ``tmp_path``, against the
local-directory registry built by the ``registry_dir`` fixture.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from click.testing import CliRunner, Result

from compsync.cli.main import cli


@pytest.fixture
def runner() -> CliRunner:
    """Create a Click CliRunner for invoking commands."""
    return CliRunner()


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run the test from an empty project directory."""
    project = tmp_path / "project"
    project.mkdir()
    monkeypatch.chdir(project)
    for key in ("COMPSYNC_REGISTRY_URL", "COMPSYNC_STATE_FILE", "COMPSYNC_COMPONENTS_DIR"):
        monkeypatch.delenv(key, raising=False)
    return project


@pytest.fixture
def invoke(runner: CliRunner, workspace: Path, registry_dir: Path) -> Callable[..., Result]:
    """Invoke ``compsync --registry <registry_dir> ARGS...``."""

    def _invoke(*args: str, env: dict[str, str] | None = None) -> Result:
        return runner.invoke(cli, ["--registry", str(registry_dir), *args], env=env)

    return _invoke
