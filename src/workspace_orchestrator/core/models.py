"""Data model for projects, repositories, workspaces and cleanup reports."""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    """Whitespace-only scripts and file lists mean "nothing configured"."""
    if v is not None and not v.strip():
        return None
    return v


class ExecutorProfileId(BaseModel):
    """Opaque executor selector, stored and returned unmodified."""
    executor: str
    variant: Optional[str] = None


class Project(BaseModel):
    """A project groups repositories and owns the project-level cleanup script."""

    id: str = Field(default_factory=new_id)
    name: str
    # Runs once per cleanup event, regardless of repo count
    worktree_cleanup_script: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("worktree_cleanup_script")
    @classmethod
    def normalize_script(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class ProjectRepo(BaseModel):
    """Membership of a git repository in a project."""

    id: str = Field(default_factory=new_id)
    project_id: str
    name: str  # directory-safe, used as the worktree directory name
    display_name: str
    git_repo_path: str
    # Runs once per repository, before its worktree is removed
    worktree_cleanup_script: Optional[str] = None
    copy_files: Optional[str] = None  # comma-separated paths relative to repo root

    @field_validator("worktree_cleanup_script", "copy_files")
    @classmethod
    def normalize_optional(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)

    def copy_file_list(self) -> List[str]:
        if not self.copy_files:
            return []
        return [p.strip() for p in self.copy_files.split(",") if p.strip()]


class Task(BaseModel):
    """A unit of work within a project; workspaces are attempts at a task."""

    id: str = Field(default_factory=new_id)
    project_id: str
    title: str
    created_at: datetime = Field(default_factory=utcnow)


class WorkspaceRepoInput(BaseModel):
    """Request-time selection of a repository to materialize. Never persisted."""
    project_repo_id: str
    base_ref: Optional[str] = None


class WorktreeState(str, Enum):
    """Lifecycle of a single worktree."""
    CREATING = "creating"
    ACTIVE = "active"
    REMOVING = "removing"
    REMOVED = "removed"
    FAILED_CREATE = "failed_create"
    FAILED_REMOVE = "failed_remove"


class WorktreeRecord(BaseModel):
    """One repository's worktree inside a workspace."""

    id: str = Field(default_factory=new_id)
    workspace_id: str = Field(frozen=True)
    project_repo_id: str = Field(frozen=True)
    repo_name: str
    path: str
    branch: str
    base_ref: str
    state: WorktreeState = WorktreeState.CREATING
    created_at: datetime = Field(default_factory=utcnow)


class Workspace(BaseModel):
    """A task attempt: one worktree per involved repository."""

    id: str = Field(default_factory=new_id)
    task_id: str
    executor_profile_id: ExecutorProfileId
    branch_name: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    worktrees: List[WorktreeRecord] = Field(default_factory=list)


# --- Cleanup reporting ---


class ScriptStatus(str, Enum):
    """Outcome of one cleanup script step."""
    OK = "ok"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    ABSENT = "absent"    # no script configured
    SKIPPED = "skipped"  # cleanup cancelled before the step started

    @property
    def ran(self) -> bool:
        return self in (ScriptStatus.OK, ScriptStatus.FAILED, ScriptStatus.TIMED_OUT)

    @property
    def is_failure(self) -> bool:
        return self in (ScriptStatus.FAILED, ScriptStatus.TIMED_OUT)


class CleanupState(str, Enum):
    """Per-event cleanup state machine; DONE and FAILED are terminal."""
    PENDING = "pending"
    RUNNING_REPO_SCRIPTS = "running_repo_scripts"
    RUNNING_PROJECT_SCRIPT = "running_project_script"
    REMOVING_WORKTREES = "removing_worktrees"
    DONE = "done"
    FAILED = "failed"


class RepoScriptOutcome(BaseModel):
    repo_id: str
    script_ran: bool
    script_status: ScriptStatus
    exit_code: Optional[int] = None
    error: Optional[str] = None


class WorktreeRemovalFailure(BaseModel):
    repo_id: str
    cause: str


class CleanupReport(BaseModel):
    """Folded result of every step of one cleanup event."""

    workspace_id: Optional[str] = None
    state: CleanupState = CleanupState.PENDING
    per_repo: List[RepoScriptOutcome] = Field(default_factory=list)
    project_script_status: Optional[ScriptStatus] = None
    project_script_error: Optional[str] = None
    worktrees_removed: List[str] = Field(default_factory=list)
    worktrees_failed_to_remove: List[WorktreeRemovalFailure] = Field(default_factory=list)
    cancelled: bool = False

    @classmethod
    def empty(cls, workspace_id: Optional[str] = None) -> "CleanupReport":
        """Report for a workspace with nothing left to clean up."""
        return cls(workspace_id=workspace_id, state=CleanupState.DONE)

    @property
    def is_empty(self) -> bool:
        return not (
            self.per_repo
            or self.worktrees_removed
            or self.worktrees_failed_to_remove
            or self.project_script_status is not None
        )

    @property
    def script_failures(self) -> List[str]:
        """Repo ids (and "project") whose cleanup script failed or timed out."""
        failures = [o.repo_id for o in self.per_repo if o.script_status.is_failure]
        if self.project_script_status is not None and self.project_script_status.is_failure:
            failures.append("project")
        return failures
