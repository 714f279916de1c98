"""Persisted workspace records."""

import logging
from pathlib import Path
from typing import List, Optional

from ..core.errors import WorkspaceNotFound
from ..core.models import Workspace, WorktreeRecord
from .store import JsonStore

logger = logging.getLogger(__name__)

WORKSPACES_FILENAME = "workspaces.json"


class WorkspaceStore:
    """Workspaces with their ordered worktree records."""

    def __init__(self, data_dir: Path):
        self.store = JsonStore(Path(data_dir) / WORKSPACES_FILENAME)

    def save(self, workspace: Workspace) -> None:
        """Persist a workspace and all of its worktree records in one write."""
        with self.store.transaction() as data:
            data.setdefault("workspaces", {})[workspace.id] = workspace.model_dump(mode="json")

    def get(self, workspace_id: str) -> Optional[Workspace]:
        raw = self.store.collection("workspaces").get(workspace_id)
        return Workspace.model_validate(raw) if raw is not None else None

    def require(self, workspace_id: str) -> Workspace:
        workspace = self.get(workspace_id)
        if workspace is None:
            raise WorkspaceNotFound(workspace_id)
        return workspace

    def list_for_task(self, task_id: str) -> List[Workspace]:
        """Workspaces of a task, most recent first."""
        workspaces = [
            Workspace.model_validate(w)
            for w in self.store.collection("workspaces").values()
            if w["task_id"] == task_id
        ]
        return sorted(workspaces, key=lambda w: w.created_at, reverse=True)

    def replace_worktrees(self, workspace_id: str, remaining: List[WorktreeRecord]) -> None:
        """Keep only ``remaining`` records; the workspace row goes once none are left."""
        with self.store.transaction() as data:
            workspaces = data.setdefault("workspaces", {})
            raw = workspaces.get(workspace_id)
            if raw is None:
                return
            if not remaining:
                del workspaces[workspace_id]
                logger.info(f"Deleted workspace record {workspace_id}")
                return
            raw["worktrees"] = [r.model_dump(mode="json") for r in remaining]
