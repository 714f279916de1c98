"""Pydantic models for API requests and responses."""

from typing import List, Optional

from pydantic import BaseModel, Field

from ..core.models import CleanupReport, ExecutorProfileId, WorkspaceRepoInput


class CreateWorkspaceRequest(BaseModel):
    """Body of POST /api/task-attempts."""
    task_id: str
    executor_profile_id: ExecutorProfileId
    repos: List[WorkspaceRepoInput]
    branch_name: Optional[str] = None  # null derives the branch name


class UpdateProjectRequest(BaseModel):
    """Fields left out of the body are unchanged; explicit null clears them."""
    name: Optional[str] = None
    worktree_cleanup_script: Optional[str] = None


class UpdateProjectRepoRequest(BaseModel):
    """Fields left out of the body are unchanged; explicit null clears them."""
    display_name: Optional[str] = None
    worktree_cleanup_script: Optional[str] = None
    copy_files: Optional[str] = None


class ErrorResponse(BaseModel):
    kind: str
    message: str


class TaskCleanupResponse(BaseModel):
    task_id: str
    deleted: bool
    reports: List[CleanupReport] = Field(default_factory=list)
