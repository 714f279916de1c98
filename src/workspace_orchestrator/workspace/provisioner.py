"""Workspace creation: one worktree per requested repository, all or nothing."""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..core.errors import (
    EmptyRepoList,
    InvalidBranchName,
    InvalidRepoReference,
    InvalidRequest,
    ProjectRepoNotFound,
    UnknownExecutorProfile,
    WorktreeCreationFailed,
    WorktreeRemovalFailed,
)
from ..core.models import (
    ExecutorProfileId,
    ProjectRepo,
    Task,
    Workspace,
    WorkspaceRepoInput,
    WorktreeRecord,
    new_id,
)
from ..registry.projects import ProjectRegistry
from ..registry.workspaces import WorkspaceStore
from ..utils.rich_logging import ContextLogger
from ..utils.validators import slugify, validate_branch_name, validate_identifier
from .executors import ExecutorProfileValidator
from .locks import WorkspaceLocks
from .worktree_manager import WorktreeManager

logger = logging.getLogger(__name__)


class WorkspaceProvisioner:
    """Validates a create request and materializes its worktrees."""

    def __init__(
        self,
        registry: ProjectRegistry,
        workspaces: WorkspaceStore,
        worktrees: WorktreeManager,
        locks: WorkspaceLocks,
        profiles: ExecutorProfileValidator,
        branch_prefix: str = "attempt",
    ):
        self.registry = registry
        self.workspaces = workspaces
        self.worktrees = worktrees
        self.locks = locks
        self.profiles = profiles
        self.branch_prefix = branch_prefix

    def derive_branch_name(self, workspace_id: str, task: Task) -> str:
        short_id = workspace_id.replace("-", "")[:4]
        return f"{self.branch_prefix}/{short_id}-{slugify(task.title)}"

    def create(
        self,
        task_id: str,
        executor_profile_id: ExecutorProfileId,
        repos: Sequence[WorkspaceRepoInput],
        branch_name: Optional[str] = None,
        workspace_id: Optional[str] = None,
    ) -> Workspace:
        """
        Create a workspace for a task attempt.

        Every repository reference is validated before any worktree exists.
        If one worktree fails, those already created are removed and nothing
        is persisted.

        Args:
            task_id: Owning task
            executor_profile_id: Passed through unmodified
            repos: Repositories to materialize, in order
            branch_name: Branch for every worktree; derived when None
            workspace_id: Caller-chosen id (generated when None)

        Returns:
            The persisted workspace with one record per input, in input order

        Raises:
            TaskNotFound, EmptyRepoList, UnknownExecutorProfile,
            InvalidBranchName, InvalidRepoReference: Before any side effect
            WorktreeCreationFailed: After rollback
        """
        task = self.registry.get_task(task_id)
        project_repos = self._validate(task, executor_profile_id, repos, branch_name)

        workspace_id = workspace_id or new_id()
        try:
            validate_identifier(workspace_id, "workspace_id")
        except ValueError as e:
            raise InvalidRequest(str(e))
        branch = branch_name or self.derive_branch_name(workspace_id, task)
        log = ContextLogger(logger, workspace_id)

        with self.locks.for_workspace(workspace_id):
            if self.workspaces.get(workspace_id) is not None:
                raise InvalidRequest(f"Workspace already exists: {workspace_id}")

            created: List[Tuple[WorktreeRecord, ProjectRepo]] = []
            for repo_input, project_repo in zip(repos, project_repos):
                log.set_context(phase="creating", repo=project_repo.name)
                try:
                    record = self.worktrees.materialize(
                        workspace_id, project_repo, branch, repo_input.base_ref
                    )
                except (WorktreeCreationFailed, OSError) as e:
                    log.error(f"Worktree creation failed, rolling back {len(created)} worktree(s): {e}")
                    self._rollback(workspace_id, created, log)
                    if isinstance(e, WorktreeCreationFailed):
                        raise
                    raise WorktreeCreationFailed(project_repo.id, str(e)) from e
                created.append((record, project_repo))

            workspace = Workspace(
                id=workspace_id,
                task_id=task.id,
                executor_profile_id=executor_profile_id,
                branch_name=branch,
                worktrees=[record for record, _ in created],
            )
            try:
                self.workspaces.save(workspace)
            except OSError as e:
                log.error(f"Failed to persist workspace, rolling back: {e}")
                self._rollback(workspace_id, created, log)
                raise

        log.set_context()
        log.info(f"Created workspace for task {task.id} with {len(created)} worktree(s) on {branch}")
        return workspace

    def _validate(
        self,
        task: Task,
        executor_profile_id: ExecutorProfileId,
        repos: Sequence[WorkspaceRepoInput],
        branch_name: Optional[str],
    ) -> List[ProjectRepo]:
        if not repos:
            raise EmptyRepoList()

        if not self.profiles.is_known(executor_profile_id):
            raise UnknownExecutorProfile(executor_profile_id.executor, executor_profile_id.variant)

        if branch_name is not None:
            try:
                validate_branch_name(branch_name)
            except ValueError as e:
                raise InvalidBranchName(branch_name, str(e))

        resolved: List[ProjectRepo] = []
        seen = set()
        for repo_input in repos:
            repo_id = repo_input.project_repo_id
            if repo_id in seen:
                raise InvalidRepoReference(repo_id, "repository requested more than once")
            seen.add(repo_id)
            try:
                project_repo = self.registry.get_project_repo(repo_id)
            except ProjectRepoNotFound:
                raise InvalidRepoReference(repo_id, "repository does not exist")
            if project_repo.project_id != task.project_id:
                raise InvalidRepoReference(repo_id, "repository is not part of the task's project")
            resolved.append(project_repo)
        return resolved

    def _rollback(
        self,
        workspace_id: str,
        created: List[Tuple[WorktreeRecord, ProjectRepo]],
        log: ContextLogger,
    ) -> None:
        for record, project_repo in reversed(created):
            log.set_context(phase="rollback", repo=project_repo.name)
            try:
                self.worktrees.remove(record, Path(project_repo.git_repo_path))
            except WorktreeRemovalFailed as e:
                log.error(f"Rollback could not remove {record.path}: {e.cause}")
        self.worktrees.remove_workspace_dir_if_empty(workspace_id)
