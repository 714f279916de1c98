"""Git worktree lifecycle for repositories inside a workspace.

Each workspace gets a directory under the worktree root with one git worktree
per repository, all on the same branch:

    <root>/<workspace id>/<repo name>
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from ..core.errors import WorktreeCreationFailed, WorktreeRemovalFailed
from ..core.models import ProjectRepo, WorktreeRecord, WorktreeState
from ..utils.subprocess_utils import SubprocessError, run_git_command
from ..utils.validators import validate_branch_name, validate_identifier

logger = logging.getLogger(__name__)

# git messages for a tracking entry whose directory is gone
_STALE_ENTRY_MARKERS = (
    "is a missing but already registered worktree",
    "is a missing but locked worktree",
    "is a missing linked working tree",
)


class WorktreeManager:
    """Creates and removes the on-disk worktree of one repository in a workspace."""

    def __init__(self, root: Path, git_timeout: int = 60):
        """
        Args:
            root: Directory that holds every workspace's worktrees
            git_timeout: Timeout in seconds for each git invocation
        """
        self.root = Path(root).expanduser().resolve()
        self.git_timeout = git_timeout
        self.root.mkdir(parents=True, exist_ok=True)

    def workspace_dir(self, workspace_id: str) -> Path:
        return self.root / validate_identifier(workspace_id, "workspace_id")

    def _get_worktree_path(self, workspace_id: str, project_repo: ProjectRepo) -> Path:
        return self.workspace_dir(workspace_id) / project_repo.name

    def materialize(
        self,
        workspace_id: str,
        project_repo: ProjectRepo,
        branch_name: str,
        base_ref_override: Optional[str] = None,
    ) -> WorktreeRecord:
        """
        Create the worktree for one repository.

        The branch is checked out if it already exists in the repository,
        otherwise created from ``base_ref_override`` or the repository's
        current branch.

        Raises:
            WorktreeCreationFailed: If the path is taken or git refuses
        """
        branch_name = validate_branch_name(branch_name)
        repo_path = Path(project_repo.git_repo_path)
        worktree_path = self._get_worktree_path(workspace_id, project_repo)

        if not repo_path.is_dir():
            raise WorktreeCreationFailed(project_repo.id, f"repository path does not exist: {repo_path}")
        if worktree_path.exists():
            raise WorktreeCreationFailed(project_repo.id, f"path already exists: {worktree_path}")

        try:
            base_ref = self._resolve_base_ref(project_repo, base_ref_override)
        except subprocess.TimeoutExpired:
            raise WorktreeCreationFailed(project_repo.id, f"git timed out after {self.git_timeout}s")

        record = WorktreeRecord(
            workspace_id=workspace_id,
            project_repo_id=project_repo.id,
            repo_name=project_repo.name,
            path=str(worktree_path),
            branch=branch_name,
            base_ref=base_ref,
        )

        worktree_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._add_worktree(repo_path, worktree_path, branch_name, base_ref)
        except SubprocessError as e:
            # Stale tracking entry blocks creation: prune just that entry and retry once
            if any(marker in e.stderr for marker in _STALE_ENTRY_MARKERS):
                self._prune_stale_entry(repo_path, worktree_path)
                try:
                    self._add_worktree(repo_path, worktree_path, branch_name, base_ref)
                except SubprocessError as retry_err:
                    record.state = WorktreeState.FAILED_CREATE
                    raise WorktreeCreationFailed(project_repo.id, retry_err.stderr.strip() or str(retry_err))
            else:
                record.state = WorktreeState.FAILED_CREATE
                raise WorktreeCreationFailed(project_repo.id, e.stderr.strip() or str(e))
        except subprocess.TimeoutExpired:
            record.state = WorktreeState.FAILED_CREATE
            raise WorktreeCreationFailed(project_repo.id, f"git timed out after {self.git_timeout}s")

        self._copy_files(project_repo, repo_path, worktree_path)

        record.state = WorktreeState.ACTIVE
        logger.info(f"Created worktree: {worktree_path} (branch: {branch_name}, base: {base_ref})")
        return record

    def _add_worktree(self, repo_path: Path, worktree_path: Path, branch_name: str, base_ref: str) -> None:
        if self._branch_exists(repo_path, branch_name):
            args = ["worktree", "add", str(worktree_path), branch_name]
        else:
            args = ["worktree", "add", "-b", branch_name, str(worktree_path), base_ref]
        run_git_command(args, cwd=repo_path, timeout=self.git_timeout)

    def _resolve_base_ref(self, project_repo: ProjectRepo, override: Optional[str]) -> str:
        repo_path = Path(project_repo.git_repo_path)
        if override:
            probe = run_git_command(
                ["rev-parse", "--verify", "--quiet", f"{override}^{{commit}}"],
                cwd=repo_path,
                check=False,
                timeout=self.git_timeout,
            )
            if probe.returncode != 0:
                raise WorktreeCreationFailed(project_repo.id, f"base ref not found: {override}")
            return override

        result = run_git_command(
            ["rev-parse", "--abbrev-ref", "HEAD"],
            cwd=repo_path,
            check=False,
            timeout=self.git_timeout,
        )
        if result.returncode != 0:
            raise WorktreeCreationFailed(
                project_repo.id, f"cannot resolve current branch: {result.stderr.strip()}"
            )
        # "HEAD" when detached, which git accepts as a start point
        return result.stdout.strip()

    def _branch_exists(self, repo_path: Path, branch_name: str) -> bool:
        result = run_git_command(
            ["rev-parse", "--verify", "--quiet", f"refs/heads/{branch_name}"],
            cwd=repo_path,
            check=False,
            timeout=self.git_timeout,
        )
        return result.returncode == 0

    def _copy_files(self, project_repo: ProjectRepo, repo_path: Path, worktree_path: Path) -> None:
        """Copy configured untracked files (e.g. .env) from the repo into the worktree."""
        for rel in project_repo.copy_file_list():
            if rel.startswith("/") or ".." in Path(rel).parts:
                logger.warning(f"Skipping copy of unsafe path {rel!r} for {project_repo.name}")
                continue
            src = repo_path / rel
            dst = worktree_path / rel
            if not src.exists() or dst.exists():
                continue
            try:
                dst.parent.mkdir(parents=True, exist_ok=True)
                if src.is_dir():
                    shutil.copytree(src, dst)
                else:
                    shutil.copy2(src, dst)
                logger.debug(f"Copied {rel} into {worktree_path}")
            except OSError as e:
                logger.warning(f"Failed to copy {rel} into {worktree_path}: {e}")

    def remove(self, record: WorktreeRecord, repo_root: Optional[Path] = None) -> None:
        """
        Delete a worktree's directory and git's tracking entry for it.

        A missing directory counts as already removed. Uses shutil.rmtree
        instead of `git worktree remove` so sibling directories are never
        touched.

        Raises:
            WorktreeRemovalFailed: If the worktree is locked or can't be deleted
        """
        path = Path(record.path)
        if repo_root is None:
            repo_root = self._find_base_repo(path)
        record.state = WorktreeState.REMOVING

        if not path.exists():
            if repo_root is not None and repo_root.exists():
                self._prune_stale_entry(repo_root, path)
            logger.info(f"Worktree already removed: {path}")
            record.state = WorktreeState.REMOVED
            return

        lock_reason = self._lock_reason(path)
        if lock_reason is not None:
            record.state = WorktreeState.FAILED_REMOVE
            raise WorktreeRemovalFailed(
                record.project_repo_id,
                f"worktree is locked{': ' + lock_reason if lock_reason else ''}",
            )

        try:
            shutil.rmtree(path)
        except OSError as e:
            record.state = WorktreeState.FAILED_REMOVE
            logger.error(f"Failed to remove worktree {path}: {e}")
            raise WorktreeRemovalFailed(record.project_repo_id, str(e))

        if repo_root is not None and repo_root.exists():
            self._prune_stale_entry(repo_root, path)
        record.state = WorktreeState.REMOVED
        logger.info(f"Removed worktree: {path}")

    def remove_workspace_dir_if_empty(self, workspace_id: str) -> None:
        ws_dir = self.workspace_dir(workspace_id)
        try:
            ws_dir.rmdir()
        except FileNotFoundError:
            pass
        except OSError:
            logger.debug(f"Workspace directory not empty, leaving it: {ws_dir}")

    def _admin_dir(self, worktree_path: Path) -> Optional[Path]:
        """git's per-worktree admin directory, read from the worktree's .git file."""
        git_file = worktree_path / ".git"
        if not git_file.is_file():
            return None
        try:
            content = git_file.read_text().strip()
        except OSError:
            return None
        if not content.startswith("gitdir:"):
            return None
        admin = Path(content[len("gitdir:"):].strip())
        if not admin.is_absolute():
            admin = (worktree_path / admin).resolve()
        return admin

    def _find_base_repo(self, worktree_path: Path) -> Optional[Path]:
        admin = self._admin_dir(worktree_path)
        # admin is like /path/to/base/.git/worktrees/name
        if admin is not None and admin.parent.parent.name == ".git":
            return admin.parent.parent.parent
        return None

    def _lock_reason(self, worktree_path: Path) -> Optional[str]:
        """None if unlocked, else the (possibly empty) reason given to `git worktree lock`."""
        admin = self._admin_dir(worktree_path)
        if admin is None:
            return None
        locked = admin / "locked"
        if not locked.exists():
            return None
        try:
            return locked.read_text().strip()
        except OSError:
            return ""

    def _prune_stale_entry(self, base_repo: Path, worktree_path: Path) -> None:
        """Remove the tracking entry for one worktree without touching siblings.

        `git worktree prune` would drop entries for every missing worktree,
        including ones that belong to other workspaces.
        """
        worktrees_dir = base_repo / ".git" / "worktrees"
        if not worktrees_dir.is_dir():
            return
        resolved_target = worktree_path.resolve()
        for entry in worktrees_dir.iterdir():
            gitdir_file = entry / "gitdir"
            if not gitdir_file.exists():
                continue
            try:
                recorded = Path(gitdir_file.read_text().strip()).resolve()
                # gitdir points to worktree/.git
                if recorded == resolved_target or recorded.parent == resolved_target:
                    shutil.rmtree(entry)
                    logger.debug(f"Removed worktree tracking entry: {entry}")
                    return
            except OSError as e:
                logger.warning(f"Could not prune tracking entry {entry}: {e}")
