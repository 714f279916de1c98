"""Cleanup of workspaces: repo scripts, then the project script, then worktrees.

One cleanup event walks the state machine

    PENDING -> RUNNING_REPO_SCRIPTS -> RUNNING_PROJECT_SCRIPT -> REMOVING_WORKTREES -> DONE

and ends in FAILED instead of DONE only when a worktree could not be removed.
Script failures are folded into the report and never stop the event.
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional, Protocol, Tuple

from ..core.errors import ProjectRepoNotFound, TaskNotFound, WorktreeRemovalFailed
from ..core.models import (
    CleanupReport,
    CleanupState,
    ProjectRepo,
    RepoScriptOutcome,
    ScriptStatus,
    Task,
    Workspace,
    WorktreeRecord,
    WorktreeRemovalFailure,
)
from ..registry.workspaces import WorkspaceStore
from ..utils.rich_logging import ContextLogger
from .locks import WorkspaceLocks
from .scripts import ScriptResult, ScriptRunner
from .worktree_manager import WorktreeManager

logger = logging.getLogger(__name__)


class CleanupRegistry(Protocol):
    """Read access to current project configuration at the moment a step runs."""

    def lookup_repo_cleanup_script(self, project_repo_id: str) -> Optional[str]:
        ...

    def lookup_project_cleanup_script(self, project_id: str) -> Optional[str]:
        ...

    def get_task(self, task_id: str) -> Task:
        ...

    def get_project_repo(self, repo_id: str) -> ProjectRepo:
        ...

    def delete_task_record(self, task_id: str) -> None:
        ...


def _is_cancelled(cancel: Optional[threading.Event]) -> bool:
    return cancel is not None and cancel.is_set()


class CleanupOrchestrator:
    """Runs cleanup scripts in order and removes a workspace's worktrees."""

    def __init__(
        self,
        registry: CleanupRegistry,
        workspaces: WorkspaceStore,
        worktrees: WorktreeManager,
        locks: WorkspaceLocks,
        runner: ScriptRunner,
        script_timeout: float = 300.0,
    ):
        self.registry = registry
        self.workspaces = workspaces
        self.worktrees = worktrees
        self.locks = locks
        self.runner = runner
        self.script_timeout = script_timeout

    def cleanup_workspace(
        self,
        workspace_id: str,
        cancel: Optional[threading.Event] = None,
    ) -> CleanupReport:
        """
        Clean up one workspace.

        Safe to re-run: a workspace with no worktrees left (or no record at
        all) yields an empty report and touches nothing. Setting ``cancel``
        lets a running script finish but skips script steps that haven't
        started; worktrees of repos already processed are still removed.

        Raises:
            WorkspaceBusy: If a create or cleanup for this workspace holds the lock
        """
        with self.locks.for_workspace(workspace_id):
            workspace = self.workspaces.get(workspace_id)
            if workspace is None or not workspace.worktrees:
                logger.debug(f"Nothing to clean up for workspace {workspace_id}")
                return CleanupReport.empty(workspace_id)
            return self._run_event(workspace, cancel)

    def cleanup_task(
        self,
        task_id: str,
        cancel: Optional[threading.Event] = None,
    ) -> List[CleanupReport]:
        """Clean up every workspace of a task, oldest first."""
        reports = []
        for workspace in reversed(self.workspaces.list_for_task(task_id)):
            reports.append(self.cleanup_workspace(workspace.id, cancel))
        return reports

    def delete_task(
        self,
        task_id: str,
        cancel: Optional[threading.Event] = None,
    ) -> List[CleanupReport]:
        """Clean up a task's workspaces and drop the task once nothing is left behind."""
        self.registry.get_task(task_id)
        reports = self.cleanup_task(task_id, cancel)
        if all(r.state == CleanupState.DONE and not r.cancelled for r in reports):
            self.registry.delete_task_record(task_id)
            logger.info(f"Deleted task {task_id}")
        else:
            logger.warning(f"Task {task_id} kept: some worktrees were not removed")
        return reports

    def _run_event(self, workspace: Workspace, cancel: Optional[threading.Event]) -> CleanupReport:
        log = ContextLogger(logger, workspace.id)
        report = CleanupReport(workspace_id=workspace.id)
        processed: List[WorktreeRecord] = []

        report.state = CleanupState.RUNNING_REPO_SCRIPTS
        for record in workspace.worktrees:
            if _is_cancelled(cancel):
                report.cancelled = True
                report.per_repo.append(RepoScriptOutcome(
                    repo_id=record.project_repo_id,
                    script_ran=False,
                    script_status=ScriptStatus.SKIPPED,
                ))
                continue
            report.per_repo.append(self._run_repo_script(record, log))
            processed.append(record)

        report.state = CleanupState.RUNNING_PROJECT_SCRIPT
        if _is_cancelled(cancel):
            report.cancelled = True
            report.project_script_status = ScriptStatus.SKIPPED
        else:
            status, error = self._run_project_script(workspace, log)
            report.project_script_status = status
            report.project_script_error = error

        report.state = CleanupState.REMOVING_WORKTREES
        for record in processed:
            log.set_context(phase="removing", repo=record.repo_name)
            try:
                self.worktrees.remove(record, self._repo_root(record.project_repo_id))
                report.worktrees_removed.append(record.project_repo_id)
            except WorktreeRemovalFailed as e:
                log.error(f"Worktree removal failed: {e.cause}")
                report.worktrees_failed_to_remove.append(
                    WorktreeRemovalFailure(repo_id=record.project_repo_id, cause=e.cause)
                )

        # Unprocessed and failed records stay so a later cleanup can retry them
        removed = set(report.worktrees_removed)
        remaining = [r for r in workspace.worktrees if r.project_repo_id not in removed]
        self.workspaces.replace_worktrees(workspace.id, remaining)
        if not remaining:
            self.worktrees.remove_workspace_dir_if_empty(workspace.id)

        report.state = CleanupState.FAILED if report.worktrees_failed_to_remove else CleanupState.DONE
        log.set_context()
        if report.script_failures:
            log.warning(f"Cleanup finished with script failures: {', '.join(report.script_failures)}")
        log.info(
            f"Cleanup {report.state.value}: removed {len(report.worktrees_removed)}, "
            f"failed {len(report.worktrees_failed_to_remove)}, kept {len(remaining)}"
        )
        return report

    def _run_repo_script(self, record: WorktreeRecord, log: ContextLogger) -> RepoScriptOutcome:
        log.set_context(phase="repo_script", repo=record.repo_name)
        script = self.registry.lookup_repo_cleanup_script(record.project_repo_id)
        if script is None:
            return RepoScriptOutcome(
                repo_id=record.project_repo_id,
                script_ran=False,
                script_status=ScriptStatus.ABSENT,
            )

        working_dir = Path(record.path)
        if not working_dir.is_dir():
            # Worktree vanished underneath us; the script's side-channel cleanup still matters
            repo_root = self._repo_root(record.project_repo_id)
            working_dir = repo_root if repo_root is not None and repo_root.is_dir() else self.worktrees.root

        status, result, error = self._execute(script, working_dir, log)
        return RepoScriptOutcome(
            repo_id=record.project_repo_id,
            script_ran=status.ran,
            script_status=status,
            exit_code=result.exit_code if result is not None else None,
            error=error,
        )

    def _run_project_script(
        self, workspace: Workspace, log: ContextLogger
    ) -> Tuple[ScriptStatus, Optional[str]]:
        log.set_context(phase="project_script")
        try:
            project_id = self.registry.get_task(workspace.task_id).project_id
        except TaskNotFound:
            return ScriptStatus.ABSENT, None
        script = self.registry.lookup_project_cleanup_script(project_id)
        if script is None:
            return ScriptStatus.ABSENT, None

        working_dir = self.worktrees.workspace_dir(workspace.id)
        if not working_dir.is_dir():
            working_dir = self.worktrees.root
        status, _, error = self._execute(script, working_dir, log)
        return status, error

    def _execute(
        self, script: str, working_dir: Path, log: ContextLogger
    ) -> Tuple[ScriptStatus, Optional[ScriptResult], Optional[str]]:
        try:
            result = self.runner.run(script, working_dir, self.script_timeout)
        except Exception as e:
            # The runner is injected; a crash is a failed step like any other
            log.warning(f"Cleanup script runner raised: {e}")
            return ScriptStatus.FAILED, None, str(e)

        if result.timed_out:
            log.warning(f"Cleanup script timed out after {self.script_timeout}s")
            return ScriptStatus.TIMED_OUT, result, result.describe()
        if not result.succeeded:
            log.warning(f"Cleanup script failed: {result.describe()}")
            return ScriptStatus.FAILED, result, result.describe()
        log.info("Cleanup script succeeded")
        return ScriptStatus.OK, result, None

    def _repo_root(self, project_repo_id: str) -> Optional[Path]:
        try:
            return Path(self.registry.get_project_repo(project_repo_id).git_repo_path)
        except ProjectRepoNotFound:
            return None
