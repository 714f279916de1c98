"""Core models, errors and configuration."""

from .config import OrchestratorConfig, load_config
from .errors import WorkspaceError
from .models import (
    CleanupReport,
    CleanupState,
    ExecutorProfileId,
    Project,
    ProjectRepo,
    ScriptStatus,
    Task,
    Workspace,
    WorkspaceRepoInput,
    WorktreeRecord,
    WorktreeState,
)

__all__ = [
    "OrchestratorConfig",
    "load_config",
    "WorkspaceError",
    "CleanupReport",
    "CleanupState",
    "ExecutorProfileId",
    "Project",
    "ProjectRepo",
    "ScriptStatus",
    "Task",
    "Workspace",
    "WorkspaceRepoInput",
    "WorktreeRecord",
    "WorktreeState",
]
