"""Shared fixtures for unit tests."""

import shutil
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from workspace_orchestrator.registry.projects import ProjectRegistry
from workspace_orchestrator.registry.workspaces import WorkspaceStore
from workspace_orchestrator.workspace.locks import WorkspaceLocks
from workspace_orchestrator.workspace.scripts import ScriptResult
from workspace_orchestrator.workspace.worktree_manager import WorktreeManager

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(repo: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


@pytest.fixture
def make_git_repo(tmp_path) -> Callable[..., Path]:
    """Factory for real git repositories with one commit on ``main``."""

    def _make(name: str = "repo", files: Optional[Dict[str, str]] = None) -> Path:
        repo = tmp_path / "repos" / name
        repo.mkdir(parents=True)
        _git(repo, "init", "-q")
        _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
        (repo / "README.md").write_text(f"# {name}\n")
        _git(repo, "add", "README.md")
        _git(repo, "commit", "-q", "-m", "initial")
        for rel, content in (files or {}).items():
            path = repo / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return repo

    return _make


@pytest.fixture
def git():
    return _git


@pytest.fixture
def fake_repo_dir(tmp_path) -> Callable[[str], Path]:
    """Factory for directories that look like git repos to the registry (no git needed)."""

    def _make(name: str) -> Path:
        repo = tmp_path / "fake-repos" / name
        (repo / ".git").mkdir(parents=True)
        return repo

    return _make


@pytest.fixture
def data_dir(tmp_path) -> Path:
    return tmp_path / "data"


@pytest.fixture
def registry(data_dir) -> ProjectRegistry:
    return ProjectRegistry(data_dir)


@pytest.fixture
def workspaces(data_dir) -> WorkspaceStore:
    return WorkspaceStore(data_dir)


@pytest.fixture
def locks(data_dir) -> WorkspaceLocks:
    return WorkspaceLocks(data_dir / "locks", timeout=0.5, poll_interval=0.01)


@pytest.fixture
def worktrees(tmp_path) -> WorktreeManager:
    return WorktreeManager(tmp_path / "worktrees", git_timeout=30)


class FakeScriptRunner:
    """Records every invocation and returns canned results keyed by script text."""

    def __init__(self, results: Optional[Dict[str, ScriptResult]] = None):
        self.results = results or {}
        self.calls: List[Tuple[str, Path, float]] = []
        self.on_run: Optional[Callable[[str, Path], None]] = None

    def run(self, script: str, working_dir: Path, timeout: float) -> ScriptResult:
        self.calls.append((script, Path(working_dir), timeout))
        if self.on_run is not None:
            self.on_run(script, Path(working_dir))
        return self.results.get(script, ScriptResult(exit_code=0))

    @property
    def scripts(self) -> List[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def fake_runner() -> FakeScriptRunner:
    return FakeScriptRunner()
