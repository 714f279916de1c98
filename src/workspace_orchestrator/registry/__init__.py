"""Persistence for projects, repositories, tasks and workspaces."""

from .projects import ProjectRegistry
from .store import JsonStore
from .workspaces import WorkspaceStore

__all__ = ["JsonStore", "ProjectRegistry", "WorkspaceStore"]
