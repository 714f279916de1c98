"""Wiring of registries, worktree manager, provisioner and cleanup from config."""

from dataclasses import dataclass
from typing import Optional

from .core.config import OrchestratorConfig
from .registry.projects import ProjectRegistry
from .registry.workspaces import WorkspaceStore
from .workspace.cleanup import CleanupOrchestrator
from .workspace.executors import ConfiguredProfiles, ExecutorProfileValidator
from .workspace.locks import WorkspaceLocks
from .workspace.provisioner import WorkspaceProvisioner
from .workspace.scripts import ScriptRunner, ShellScriptRunner
from .workspace.worktree_manager import WorktreeManager


@dataclass
class Services:
    registry: ProjectRegistry
    workspaces: WorkspaceStore
    worktrees: WorktreeManager
    provisioner: WorkspaceProvisioner
    cleanup: CleanupOrchestrator


def build_services(
    config: OrchestratorConfig,
    runner: Optional[ScriptRunner] = None,
    profiles: Optional[ExecutorProfileValidator] = None,
) -> Services:
    """Build the object graph; ``runner`` and ``profiles`` can be swapped for tests."""
    data_dir = config.registry.data_dir
    registry = ProjectRegistry(data_dir)
    workspaces = WorkspaceStore(data_dir)
    worktrees = WorktreeManager(config.worktree.root, git_timeout=config.worktree.git_timeout)
    locks = WorkspaceLocks(
        data_dir / "locks",
        timeout=config.cleanup.lock_timeout,
        poll_interval=config.cleanup.lock_poll_interval,
    )

    provisioner = WorkspaceProvisioner(
        registry=registry,
        workspaces=workspaces,
        worktrees=worktrees,
        locks=locks,
        profiles=profiles or ConfiguredProfiles(config.executors.profiles),
        branch_prefix=config.worktree.branch_prefix,
    )
    cleanup = CleanupOrchestrator(
        registry=registry,
        workspaces=workspaces,
        worktrees=worktrees,
        locks=locks,
        runner=runner or ShellScriptRunner(config.cleanup.shell),
        script_timeout=config.cleanup.script_timeout,
    )
    return Services(
        registry=registry,
        workspaces=workspaces,
        worktrees=worktrees,
        provisioner=provisioner,
        cleanup=cleanup,
    )
