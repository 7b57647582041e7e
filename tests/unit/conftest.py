"""Shared fixtures: an ownership directory, a config and a scratch git repo."""

import shutil
from pathlib import Path

import pytest
import yaml

from bog_orchestrate.core.config import OrchestrateConfig
from bog_orchestrate.core.ownership import OwnershipDirectory
from tests.unit.fakes import OWNERSHIP_YAML, git


@pytest.fixture
def directory() -> OwnershipDirectory:
    data = yaml.safe_load(OWNERSHIP_YAML)
    return OwnershipDirectory(**data, raw_declarations=OWNERSHIP_YAML)


@pytest.fixture
def fast_config() -> OrchestrateConfig:
    return OrchestrateConfig(provider={"poll_interval_seconds": 0.05})


@pytest.fixture
def git_repo(tmp_path) -> Path:
    """A committed repository with three source files and the ownership file."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    repo = tmp_path / "repo"
    repo.mkdir()
    git(["init", "-q"], repo)
    git(["config", "user.email", "test@example.com"], repo)
    git(["config", "user.name", "Test"], repo)
    git(["config", "commit.gpgsign", "false"], repo)

    (repo / "src").mkdir()
    (repo / "src" / "ast.rs").write_text("pub struct Ast;\n")
    (repo / "src" / "parser.rs").write_text("pub fn parse() {}\n")
    (repo / "src" / "cli.rs").write_text("fn main() {}\n")
    (repo / "ownership.yaml").write_text(OWNERSHIP_YAML)
    git(["add", "-A"], repo)
    git(["commit", "-q", "-m", "initial"], repo)
    return repo
