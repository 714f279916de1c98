"""Project and repository registry.

Read-mostly shared configuration. Edits are last-writer-wins and are never
joined to an in-flight cleanup: the cleanup orchestrator looks scripts up at
the moment each step runs.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

from ..core.errors import (
    InvalidRepoReference,
    ProjectHasTasks,
    ProjectNotFound,
    ProjectRepoAlreadyExists,
    ProjectRepoNotFound,
    TaskNotFound,
)
from ..core.models import Project, ProjectRepo, Task
from .store import JsonStore

logger = logging.getLogger(__name__)

REGISTRY_FILENAME = "registry.json"

# Sentinel so that update calls can distinguish "leave unchanged" from "clear"
UNSET = object()


def _repo_dir_name(git_repo_path: Path) -> str:
    name = re.sub(r'[^A-Za-z0-9_.-]+', '-', git_repo_path.name).strip('-.')
    return name or "repo"


class ProjectRegistry:
    """Projects, their repositories, and the tasks that belong to them."""

    def __init__(self, data_dir: Path):
        self.store = JsonStore(Path(data_dir) / REGISTRY_FILENAME)

    # --- Projects ---

    def create_project(self, name: str, worktree_cleanup_script: Optional[str] = None) -> Project:
        project = Project(name=name, worktree_cleanup_script=worktree_cleanup_script)
        with self.store.transaction() as data:
            data.setdefault("projects", {})[project.id] = project.model_dump(mode="json")
        logger.info(f"Created project {project.name} ({project.id})")
        return project

    def get_project(self, project_id: str) -> Project:
        raw = self.store.collection("projects").get(project_id)
        if raw is None:
            raise ProjectNotFound(project_id)
        return Project.model_validate(raw)

    def list_projects(self) -> List[Project]:
        projects = [Project.model_validate(p) for p in self.store.collection("projects").values()]
        return sorted(projects, key=lambda p: p.created_at)

    def update_project(self, project_id: str, *, name=UNSET, worktree_cleanup_script=UNSET) -> Project:
        with self.store.transaction() as data:
            projects = data.setdefault("projects", {})
            if project_id not in projects:
                raise ProjectNotFound(project_id)
            raw = dict(projects[project_id])
            if name is not UNSET:
                raw["name"] = name
            if worktree_cleanup_script is not UNSET:
                raw["worktree_cleanup_script"] = worktree_cleanup_script
            project = Project.model_validate(raw)
            projects[project_id] = project.model_dump(mode="json")
        return project

    def delete_project(self, project_id: str) -> None:
        """
        Delete a project together with its repositories.

        Raises:
            ProjectNotFound: If the project doesn't exist
            ProjectHasTasks: While any task remains; its workspaces would be orphaned
        """
        with self.store.transaction() as data:
            projects = data.setdefault("projects", {})
            if project_id not in projects:
                raise ProjectNotFound(project_id)
            tasks = [t for t in data.get("tasks", {}).values() if t["project_id"] == project_id]
            if tasks:
                raise ProjectHasTasks(project_id, len(tasks))
            del projects[project_id]
            repos = data.setdefault("project_repos", {})
            for key in [k for k, v in repos.items() if v["project_id"] == project_id]:
                del repos[key]
        logger.info(f"Deleted project {project_id}")

    # --- Repositories ---

    def add_repo_to_project(
        self,
        project_id: str,
        git_repo_path: str,
        display_name: Optional[str] = None,
        worktree_cleanup_script: Optional[str] = None,
        copy_files: Optional[str] = None,
    ) -> ProjectRepo:
        """
        Register a git repository as a member of a project.

        Raises:
            ProjectNotFound: If the project doesn't exist
            InvalidRepoReference: If the path is not a git repository
            ProjectRepoAlreadyExists: If the path is already in this project
        """
        repo_path = Path(git_repo_path).expanduser().resolve()
        if not (repo_path / ".git").exists():
            raise InvalidRepoReference(str(repo_path), "not a git repository")

        with self.store.transaction() as data:
            if project_id not in data.get("projects", {}):
                raise ProjectNotFound(project_id)
            repos = data.setdefault("project_repos", {})
            siblings = [r for r in repos.values() if r["project_id"] == project_id]
            if any(r["git_repo_path"] == str(repo_path) for r in siblings):
                raise ProjectRepoAlreadyExists(project_id, str(repo_path))

            # Worktree directory names must be unique within a workspace
            taken = {r["name"] for r in siblings}
            base = _repo_dir_name(repo_path)
            name, n = base, 2
            while name in taken:
                name, n = f"{base}-{n}", n + 1

            repo = ProjectRepo(
                project_id=project_id,
                name=name,
                display_name=display_name or repo_path.name,
                git_repo_path=str(repo_path),
                worktree_cleanup_script=worktree_cleanup_script,
                copy_files=copy_files,
            )
            repos[repo.id] = repo.model_dump(mode="json")
        logger.info(f"Added repository {repo.display_name} to project {project_id}")
        return repo

    def remove_repo_from_project(self, project_id: str, repo_id: str) -> None:
        with self.store.transaction() as data:
            repos = data.setdefault("project_repos", {})
            raw = repos.get(repo_id)
            if raw is None or raw["project_id"] != project_id:
                raise ProjectRepoNotFound(repo_id)
            del repos[repo_id]

    def update_project_repo(
        self,
        project_id: str,
        repo_id: str,
        *,
        display_name=UNSET,
        worktree_cleanup_script=UNSET,
        copy_files=UNSET,
    ) -> ProjectRepo:
        with self.store.transaction() as data:
            repos = data.setdefault("project_repos", {})
            raw = repos.get(repo_id)
            if raw is None or raw["project_id"] != project_id:
                raise ProjectRepoNotFound(repo_id)
            raw = dict(raw)
            for field, value in (
                ("display_name", display_name),
                ("worktree_cleanup_script", worktree_cleanup_script),
                ("copy_files", copy_files),
            ):
                if value is not UNSET:
                    raw[field] = value
            repo = ProjectRepo.model_validate(raw)
            repos[repo_id] = repo.model_dump(mode="json")
        return repo

    def get_project_repo(self, repo_id: str) -> ProjectRepo:
        raw = self.store.collection("project_repos").get(repo_id)
        if raw is None:
            raise ProjectRepoNotFound(repo_id)
        return ProjectRepo.model_validate(raw)

    def find_repos_for_project(self, project_id: str) -> List[ProjectRepo]:
        repos = [
            ProjectRepo.model_validate(r)
            for r in self.store.collection("project_repos").values()
            if r["project_id"] == project_id
        ]
        return sorted(repos, key=lambda r: r.display_name)

    # --- Tasks ---

    def create_task(self, project_id: str, title: str) -> Task:
        task = Task(project_id=project_id, title=title)
        with self.store.transaction() as data:
            if project_id not in data.get("projects", {}):
                raise ProjectNotFound(project_id)
            data.setdefault("tasks", {})[task.id] = task.model_dump(mode="json")
        return task

    def get_task(self, task_id: str) -> Task:
        raw = self.store.collection("tasks").get(task_id)
        if raw is None:
            raise TaskNotFound(task_id)
        return Task.model_validate(raw)

    def list_tasks(self, project_id: str) -> List[Task]:
        tasks = [
            Task.model_validate(t)
            for t in self.store.collection("tasks").values()
            if t["project_id"] == project_id
        ]
        return sorted(tasks, key=lambda t: t.created_at)

    def delete_task_record(self, task_id: str) -> None:
        with self.store.transaction() as data:
            if data.setdefault("tasks", {}).pop(task_id, None) is None:
                raise TaskNotFound(task_id)

    # --- Cleanup script lookup (current values, never cached) ---

    def lookup_repo_cleanup_script(self, project_repo_id: str) -> Optional[str]:
        raw: Optional[Dict] = self.store.collection("project_repos").get(project_repo_id)
        if raw is None:
            return None
        return ProjectRepo.model_validate(raw).worktree_cleanup_script

    def lookup_project_cleanup_script(self, project_id: str) -> Optional[str]:
        raw: Optional[Dict] = self.store.collection("projects").get(project_id)
        if raw is None:
            return None
        return Project.model_validate(raw).worktree_cleanup_script
