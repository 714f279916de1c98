"""Workspace lifecycle: worktrees, provisioning, and cleanup."""

from .cleanup import CleanupOrchestrator
from .executors import ConfiguredProfiles
from .locks import WorkspaceLock, WorkspaceLocks
from .provisioner import WorkspaceProvisioner
from .scripts import ScriptResult, ShellScriptRunner
from .worktree_manager import WorktreeManager

__all__ = [
    "CleanupOrchestrator",
    "ConfiguredProfiles",
    "ScriptResult",
    "ShellScriptRunner",
    "WorkspaceLock",
    "WorkspaceLocks",
    "WorkspaceProvisioner",
    "WorktreeManager",
]
