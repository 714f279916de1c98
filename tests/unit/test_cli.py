"""Tests for the command line interface."""

import logging

import pytest
from click.testing import CliRunner

from workspace_orchestrator.cli.main import _parse_repo_inputs, cli
from workspace_orchestrator.core.config import clear_config_cache
from workspace_orchestrator.core.errors import ProjectNotFound, TaskNotFound
from workspace_orchestrator.registry.projects import ProjectRegistry
from workspace_orchestrator.utils.rich_logging import ROOT_LOGGER_NAME


@pytest.fixture
def config_path(tmp_path):
    clear_config_cache()
    path = tmp_path / "workspace-orchestrator.yaml"
    path.write_text(
        "worktree:\n"
        f"  root: {tmp_path / 'worktrees'}\n"
        "registry:\n"
        f"  data_dir: {tmp_path / 'data'}\n"
    )
    yield path
    clear_config_cache()
    # Handlers installed by the command point at CliRunner streams that are now closed
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)


@pytest.fixture
def registry(tmp_path):
    return ProjectRegistry(tmp_path / "data")


def _invoke(config_path, *args):
    return CliRunner().invoke(cli, ["--config", str(config_path), *args])


class TestProjectCommands:
    """Tests for project commands."""

    def test_create_and_list(self, config_path, registry):
        result = _invoke(config_path, "project", "create", "demo", "--cleanup-script", "echo bye")
        assert result.exit_code == 0, result.output
        assert "Created project demo" in result.output

        project = registry.list_projects()[0]
        assert project.worktree_cleanup_script == "echo bye"

        result = _invoke(config_path, "project", "list")
        assert result.exit_code == 0
        assert "demo" in result.output

    def test_set_and_clear_cleanup_script(self, config_path, registry):
        project = registry.create_project("demo")

        _invoke(config_path, "project", "set-cleanup-script", project.id, "make clean")
        assert registry.lookup_project_cleanup_script(project.id) == "make clean"

        result = _invoke(config_path, "project", "set-cleanup-script", project.id)
        assert "Cleared" in result.output
        assert registry.lookup_project_cleanup_script(project.id) is None

    def test_delete_project_with_tasks(self, config_path, registry):
        project = registry.create_project("demo")
        registry.create_task(project.id, "Fix bug")

        result = _invoke(config_path, "project", "delete", project.id)

        assert result.exit_code == 0, result.output
        assert registry.list_projects() == []

    def test_delete_unknown_project(self, config_path):
        result = _invoke(config_path, "project", "delete", "nope")
        assert result.exit_code != 0
        assert isinstance(result.exception, ProjectNotFound)


class TestRepoCommands:
    """Tests for repository commands."""

    def test_add_list_update_remove(self, config_path, registry, fake_repo_dir):
        project = registry.create_project("demo")
        path = fake_repo_dir("api")

        result = _invoke(
            config_path, "repo", "add", project.id, str(path),
            "--name", "API", "--cleanup-script", "rm -rf build", "--copy-files", ".env",
        )
        assert result.exit_code == 0, result.output
        repo = registry.find_repos_for_project(project.id)[0]
        assert repo.display_name == "API"
        assert repo.copy_files == ".env"

        result = _invoke(config_path, "repo", "list", project.id)
        assert "API" in result.output

        _invoke(config_path, "repo", "set-cleanup-script", project.id, repo.id, "make clean")
        assert registry.lookup_repo_cleanup_script(repo.id) == "make clean"

        result = _invoke(config_path, "repo", "remove", project.id, repo.id)
        assert result.exit_code == 0
        assert registry.find_repos_for_project(project.id) == []


class TestTaskCommands:
    """Tests for task and attempt commands."""

    def test_create_and_delete_task(self, config_path, registry):
        project = registry.create_project("demo")

        result = _invoke(config_path, "task", "create", project.id, "Fix bug")
        assert result.exit_code == 0, result.output
        task = registry.list_tasks(project.id)[0]
        assert task.title == "Fix bug"

        result = _invoke(config_path, "attempt", "list", task.id)
        assert result.exit_code == 0

        result = _invoke(config_path, "task", "delete", task.id)
        assert result.exit_code == 0, result.output
        with pytest.raises(TaskNotFound):
            registry.get_task(task.id)

    def test_cleanup_unknown_attempt(self, config_path):
        result = _invoke(config_path, "attempt", "cleanup", "never-existed")
        assert result.exit_code == 0, result.output
        assert "Nothing to clean up" in result.output

    def test_attempt_create_validation_error(self, config_path, registry):
        task = registry.create_task(registry.create_project("demo").id, "Fix bug")
        result = _invoke(config_path, "attempt", "create", task.id, "-e", "CLAUDE_CODE", "-r", "ghost")
        assert result.exit_code != 0
        assert getattr(result.exception, "kind", None) == "invalid_repo_reference"


class TestParseRepoInputs:
    """Tests for REPO_ID[:BASE_REF] parsing."""

    def test_with_and_without_base_ref(self):
        inputs = _parse_repo_inputs(["r1", "r2:release/1.0"])
        assert [(i.project_repo_id, i.base_ref) for i in inputs] == [("r1", None), ("r2", "release/1.0")]
