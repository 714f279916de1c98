"""Exception taxonomy for workspace provisioning and cleanup.

Every error carries a machine-readable ``kind`` and an HTTP status so the API
layer can surface it verbatim. Cleanup script failures are deliberately absent
here: they are recorded in the CleanupReport, never raised.
"""

from typing import Any, Dict


class WorkspaceError(Exception):
    """Base class for all orchestrator errors."""

    kind = "workspace_error"
    status_code = 500

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API error responses."""
        return {"kind": self.kind, "message": self.message, **self.details}


# --- Validation errors: rejected before any side effect ---


class InvalidRequest(WorkspaceError):
    kind = "invalid_request"
    status_code = 400


class EmptyRepoList(InvalidRequest):
    kind = "empty_repo_list"

    def __init__(self):
        super().__init__("At least one repository is required to create a workspace")


class InvalidRepoReference(InvalidRequest):
    kind = "invalid_repo_reference"

    def __init__(self, repo_id: str, reason: str):
        self.repo_id = repo_id
        self.reason = reason
        super().__init__(
            f"Invalid repository reference {repo_id}: {reason}",
            repo_id=repo_id,
            reason=reason,
        )


class InvalidBranchName(InvalidRequest):
    kind = "invalid_branch_name"

    def __init__(self, branch_name: str, reason: str):
        self.branch_name = branch_name
        super().__init__(
            f"Invalid branch name {branch_name!r}: {reason}",
            branch_name=branch_name,
        )


class UnknownExecutorProfile(InvalidRequest):
    kind = "unknown_executor_profile"

    def __init__(self, executor: str, variant: Any = None):
        self.executor = executor
        self.variant = variant
        super().__init__(
            f"Unknown executor profile: {executor}" + (f" ({variant})" if variant else ""),
            executor=executor,
            variant=variant,
        )


# --- Lookup errors ---


class NotFoundError(WorkspaceError):
    kind = "not_found"
    status_code = 404

    entity = "Entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id}", id=entity_id)


class TaskNotFound(NotFoundError):
    kind = "task_not_found"
    entity = "Task"


class ProjectNotFound(NotFoundError):
    kind = "project_not_found"
    entity = "Project"


class ProjectRepoNotFound(NotFoundError):
    kind = "project_repo_not_found"
    entity = "Repository"


class WorkspaceNotFound(NotFoundError):
    kind = "workspace_not_found"
    entity = "Workspace"


# --- Conflicts ---


class ProjectRepoAlreadyExists(WorkspaceError):
    kind = "project_repo_already_exists"
    status_code = 409

    def __init__(self, project_id: str, git_repo_path: str):
        super().__init__(
            "Repository already exists in this project",
            project_id=project_id,
            git_repo_path=git_repo_path,
        )


class ProjectHasTasks(WorkspaceError):
    """Tasks own workspaces on disk; they go through task deletion first."""

    kind = "project_has_tasks"
    status_code = 409

    def __init__(self, project_id: str, task_count: int):
        super().__init__(
            f"Project {project_id} still has {task_count} task(s); delete them first",
            project_id=project_id,
            task_count=task_count,
        )


class WorkspaceBusy(WorkspaceError):
    """Another create or cleanup holds the workspace lock."""

    kind = "workspace_busy"
    status_code = 409

    def __init__(self, workspace_id: str, timeout: float):
        self.workspace_id = workspace_id
        super().__init__(
            f"Workspace {workspace_id} is busy (lock not acquired within {timeout}s)",
            workspace_id=workspace_id,
        )


# --- Filesystem / version-control errors ---


class WorktreeCreationFailed(WorkspaceError):
    kind = "worktree_creation_failed"

    def __init__(self, repo_id: str, cause: str):
        self.repo_id = repo_id
        self.cause = cause
        super().__init__(
            f"Failed to create worktree for repository {repo_id}: {cause}",
            repo_id=repo_id,
            cause=cause,
        )


class WorktreeRemovalFailed(WorkspaceError):
    kind = "worktree_removal_failed"

    def __init__(self, repo_id: str, cause: str):
        self.repo_id = repo_id
        self.cause = cause
        super().__init__(
            f"Failed to remove worktree for repository {repo_id}: {cause}",
            repo_id=repo_id,
            cause=cause,
        )
