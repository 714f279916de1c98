"""Tests for configuration loading."""

import os

import pytest
from pydantic import ValidationError

from workspace_orchestrator.core.config import (
    CleanupSettings,
    OrchestratorConfig,
    WorktreeSettings,
    clear_config_cache,
    load_config,
)


@pytest.fixture(autouse=True)
def _clear_cache():
    clear_config_cache()
    yield
    clear_config_cache()


class TestDefaults:
    """Tests for default configuration values."""

    def test_defaults(self):
        config = OrchestratorConfig()
        assert config.log_level == "INFO"
        assert config.worktree.branch_prefix == "attempt"
        assert config.cleanup.script_timeout == 300.0
        assert "CLAUDE_CODE" in config.executors.profiles

    def test_paths_expanded(self):
        settings = WorktreeSettings(root="~/worktrees")
        assert "~" not in str(settings.root)

    def test_branch_prefix_slashes_stripped(self):
        assert WorktreeSettings(branch_prefix="/vk/").branch_prefix == "vk"

    def test_empty_branch_prefix_rejected(self):
        with pytest.raises(ValidationError):
            WorktreeSettings(branch_prefix="/")

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ValidationError):
            CleanupSettings(script_timeout=0)

    def test_log_level_normalized(self):
        assert OrchestratorConfig(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            OrchestratorConfig(log_level="LOUD")


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_returns_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")
        assert config.worktree.branch_prefix == "attempt"

    def test_loads_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "log_level: warning\n"
            "worktree:\n"
            f"  root: {tmp_path / 'wt'}\n"
            "  branch_prefix: vk\n"
            "cleanup:\n"
            "  script_timeout: 12\n"
            "executors:\n"
            "  profiles: [CUSTOM]\n"
        )
        config = load_config(path)
        assert config.log_level == "WARNING"
        assert config.worktree.root == tmp_path / "wt"
        assert config.worktree.branch_prefix == "vk"
        assert config.cleanup.script_timeout == 12
        assert config.executors.profiles == ["CUSTOM"]

    def test_env_var_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_WS_DATA_DIR", str(tmp_path / "data"))
        path = tmp_path / "config.yaml"
        path.write_text("registry:\n  data_dir: ${TEST_WS_DATA_DIR}\n")
        config = load_config(path)
        assert config.registry.data_dir == tmp_path / "data"

    def test_unset_env_var_kept_literally(self, tmp_path, monkeypatch):
        monkeypatch.delenv("TEST_WS_MISSING", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("cleanup:\n  shell: ${TEST_WS_MISSING}\n")
        assert load_config(path).cleanup.shell == "${TEST_WS_MISSING}"

    def test_cached_until_file_changes(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("log_level: INFO\n")
        first = load_config(path)
        assert load_config(path) is first

        path.write_text("log_level: ERROR\n")
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))
        assert load_config(path).log_level == "ERROR"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert isinstance(load_config(path), OrchestratorConfig)
