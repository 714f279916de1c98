"""Tests for the project, repository, task and workspace registries."""

import json
from datetime import timedelta

import pytest

from workspace_orchestrator.core.errors import (
    InvalidRepoReference,
    ProjectHasTasks,
    ProjectNotFound,
    ProjectRepoAlreadyExists,
    ProjectRepoNotFound,
    TaskNotFound,
    WorkspaceNotFound,
)
from workspace_orchestrator.core.models import ExecutorProfileId, Workspace, WorktreeRecord
from workspace_orchestrator.registry.store import JsonStore


def _workspace(task_id: str, repo_ids, **kwargs) -> Workspace:
    workspace = Workspace(
        task_id=task_id,
        executor_profile_id=ExecutorProfileId(executor="CLAUDE_CODE"),
        branch_name="attempt/abcd-task",
        **kwargs,
    )
    workspace.worktrees = [
        WorktreeRecord(
            workspace_id=workspace.id,
            project_repo_id=repo_id,
            repo_name=repo_id,
            path=f"/tmp/wt/{workspace.id}/{repo_id}",
            branch="attempt/abcd-task",
            base_ref="main",
        )
        for repo_id in repo_ids
    ]
    return workspace


class TestJsonStore:
    """Tests for the JSON document store."""

    def test_transaction_persists(self, tmp_path):
        store = JsonStore(tmp_path / "store.json")
        with store.transaction() as data:
            data.setdefault("items", {})["a"] = {"x": 1}
        assert store.collection("items") == {"a": {"x": 1}}
        assert json.loads((tmp_path / "store.json").read_text()) == {"items": {"a": {"x": 1}}}

    def test_failed_transaction_does_not_write(self, tmp_path):
        store = JsonStore(tmp_path / "store.json")
        with pytest.raises(RuntimeError):
            with store.transaction() as data:
                data["items"] = {"a": 1}
                raise RuntimeError("boom")
        assert store.read() == {}

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        with pytest.raises(json.JSONDecodeError):
            JsonStore(path).read()


class TestProjects:
    """Tests for project CRUD."""

    def test_create_and_get(self, registry):
        project = registry.create_project("demo", "echo bye")
        fetched = registry.get_project(project.id)
        assert fetched.name == "demo"
        assert fetched.worktree_cleanup_script == "echo bye"

    def test_get_missing(self, registry):
        with pytest.raises(ProjectNotFound):
            registry.get_project("nope")

    def test_list_in_creation_order(self, registry):
        first = registry.create_project("b")
        second = registry.create_project("a")
        assert [p.id for p in registry.list_projects()] == [first.id, second.id]

    def test_update_leaves_unset_fields(self, registry):
        project = registry.create_project("demo", "echo bye")
        updated = registry.update_project(project.id, name="renamed")
        assert updated.name == "renamed"
        assert updated.worktree_cleanup_script == "echo bye"

    def test_update_clears_script(self, registry):
        project = registry.create_project("demo", "echo bye")
        registry.update_project(project.id, worktree_cleanup_script="  ")
        assert registry.lookup_project_cleanup_script(project.id) is None

    def test_update_missing(self, registry):
        with pytest.raises(ProjectNotFound):
            registry.update_project("nope", name="x")

    def test_delete_cascades(self, registry, fake_repo_dir):
        project = registry.create_project("demo")
        other = registry.create_project("other")
        registry.add_repo_to_project(project.id, str(fake_repo_dir("api")))
        kept_repo = registry.add_repo_to_project(other.id, str(fake_repo_dir("web")))

        registry.delete_project(project.id)

        assert [p.id for p in registry.list_projects()] == [other.id]
        assert registry.find_repos_for_project(project.id) == []
        assert registry.get_project_repo(kept_repo.id).project_id == other.id

    def test_delete_refused_while_tasks_remain(self, registry, fake_repo_dir):
        project = registry.create_project("demo")
        repo = registry.add_repo_to_project(project.id, str(fake_repo_dir("api")))
        task = registry.create_task(project.id, "Fix bug")

        with pytest.raises(ProjectHasTasks) as exc_info:
            registry.delete_project(project.id)

        assert exc_info.value.status_code == 409
        assert registry.get_project(project.id).id == project.id
        assert registry.get_project_repo(repo.id).project_id == project.id
        assert registry.get_task(task.id).project_id == project.id

        registry.delete_task_record(task.id)
        registry.delete_project(project.id)
        assert registry.list_projects() == []


class TestRepositories:
    """Tests for repository membership."""

    def test_add_repo(self, registry, fake_repo_dir):
        project = registry.create_project("demo")
        path = fake_repo_dir("api")
        repo = registry.add_repo_to_project(project.id, str(path), worktree_cleanup_script="rm -rf node_modules")

        assert repo.name == "api"
        assert repo.display_name == "api"
        assert repo.git_repo_path == str(path.resolve())
        assert registry.lookup_repo_cleanup_script(repo.id) == "rm -rf node_modules"

    def test_add_requires_git_repo(self, registry, tmp_path):
        project = registry.create_project("demo")
        plain = tmp_path / "plain"
        plain.mkdir()
        with pytest.raises(InvalidRepoReference):
            registry.add_repo_to_project(project.id, str(plain))

    def test_add_to_missing_project(self, registry, fake_repo_dir):
        with pytest.raises(ProjectNotFound):
            registry.add_repo_to_project("nope", str(fake_repo_dir("api")))

    def test_duplicate_path_rejected(self, registry, fake_repo_dir):
        project = registry.create_project("demo")
        path = fake_repo_dir("api")
        registry.add_repo_to_project(project.id, str(path))
        with pytest.raises(ProjectRepoAlreadyExists):
            registry.add_repo_to_project(project.id, str(path) + "/")

    def test_same_path_in_two_projects(self, registry, fake_repo_dir):
        path = fake_repo_dir("api")
        registry.add_repo_to_project(registry.create_project("a").id, str(path))
        registry.add_repo_to_project(registry.create_project("b").id, str(path))

    def test_directory_names_unique_within_project(self, registry, tmp_path):
        project = registry.create_project("demo")
        names = []
        for parent in ("one", "two", "three"):
            path = tmp_path / parent / "api"
            (path / ".git").mkdir(parents=True)
            names.append(registry.add_repo_to_project(project.id, str(path)).name)
        assert names == ["api", "api-2", "api-3"]

    def test_find_repos_ordered_by_display_name(self, registry, fake_repo_dir):
        project = registry.create_project("demo")
        registry.add_repo_to_project(project.id, str(fake_repo_dir("zeta")), display_name="Zeta")
        registry.add_repo_to_project(project.id, str(fake_repo_dir("alpha")), display_name="Alpha")
        assert [r.display_name for r in registry.find_repos_for_project(project.id)] == ["Alpha", "Zeta"]

    def test_remove_repo(self, registry, fake_repo_dir):
        project = registry.create_project("demo")
        repo = registry.add_repo_to_project(project.id, str(fake_repo_dir("api")))
        registry.remove_repo_from_project(project.id, repo.id)
        with pytest.raises(ProjectRepoNotFound):
            registry.get_project_repo(repo.id)

    def test_remove_repo_from_wrong_project(self, registry, fake_repo_dir):
        project = registry.create_project("demo")
        other = registry.create_project("other")
        repo = registry.add_repo_to_project(project.id, str(fake_repo_dir("api")))
        with pytest.raises(ProjectRepoNotFound):
            registry.remove_repo_from_project(other.id, repo.id)

    def test_update_repo(self, registry, fake_repo_dir):
        project = registry.create_project("demo")
        repo = registry.add_repo_to_project(project.id, str(fake_repo_dir("api")), worktree_cleanup_script="old")

        updated = registry.update_project_repo(project.id, repo.id, display_name="API", copy_files=".env")
        assert updated.display_name == "API"
        assert updated.copy_files == ".env"
        assert updated.worktree_cleanup_script == "old"

        registry.update_project_repo(project.id, repo.id, worktree_cleanup_script=None)
        assert registry.lookup_repo_cleanup_script(repo.id) is None

    def test_lookup_missing_repo_script(self, registry):
        assert registry.lookup_repo_cleanup_script("nope") is None
        assert registry.lookup_project_cleanup_script("nope") is None


class TestTasks:
    """Tests for task records."""

    def test_create_and_list(self, registry):
        project = registry.create_project("demo")
        task = registry.create_task(project.id, "Fix bug")
        assert registry.get_task(task.id).title == "Fix bug"
        assert [t.id for t in registry.list_tasks(project.id)] == [task.id]

    def test_create_for_missing_project(self, registry):
        with pytest.raises(ProjectNotFound):
            registry.create_task("nope", "Fix bug")

    def test_delete_record(self, registry):
        task = registry.create_task(registry.create_project("demo").id, "Fix bug")
        registry.delete_task_record(task.id)
        with pytest.raises(TaskNotFound):
            registry.delete_task_record(task.id)


class TestWorkspaceStore:
    """Tests for persisted workspaces."""

    def test_save_and_get(self, workspaces):
        workspace = _workspace("t1", ["a", "b"])
        workspaces.save(workspace)
        fetched = workspaces.get(workspace.id)
        assert fetched is not None
        assert [r.project_repo_id for r in fetched.worktrees] == ["a", "b"]

    def test_get_missing(self, workspaces):
        assert workspaces.get("nope") is None
        with pytest.raises(WorkspaceNotFound):
            workspaces.require("nope")

    def test_list_for_task_most_recent_first(self, workspaces):
        older = _workspace("t1", ["a"])
        newer = _workspace("t1", ["a"], created_at=older.created_at + timedelta(seconds=5))
        workspaces.save(older)
        workspaces.save(newer)
        workspaces.save(_workspace("t2", ["a"]))
        assert [w.id for w in workspaces.list_for_task("t1")] == [newer.id, older.id]

    def test_replace_worktrees_keeps_subset(self, workspaces):
        workspace = _workspace("t1", ["a", "b", "c"])
        workspaces.save(workspace)
        workspaces.replace_worktrees(workspace.id, workspace.worktrees[1:2])
        assert [r.project_repo_id for r in workspaces.require(workspace.id).worktrees] == ["b"]

    def test_replace_with_nothing_deletes(self, workspaces):
        workspace = _workspace("t1", ["a"])
        workspaces.save(workspace)
        workspaces.replace_worktrees(workspace.id, [])
        assert workspaces.get(workspace.id) is None

    def test_replace_missing_is_noop(self, workspaces):
        workspaces.replace_worktrees("nope", [])
        assert workspaces.get("nope") is None
