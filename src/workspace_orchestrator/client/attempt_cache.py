"""Client-side view of a task's workspaces, kept in sync with creations.

New workspaces are prepended to the cached list for their task (most recent
first). Existing entries are never reordered or deduplicated.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from ..core.models import ExecutorProfileId, Workspace, WorkspaceRepoInput
from ..web.models import CreateWorkspaceRequest

logger = logging.getLogger(__name__)


class AttemptsApiError(Exception):
    """Error response from the Provisioner API, keeping its machine-readable kind."""

    def __init__(self, status_code: int, kind: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.kind = kind
        self.message = message
        self.details = details or {}
        super().__init__(f"{kind}: {message}")

    @classmethod
    def from_response(cls, response: requests.Response) -> "AttemptsApiError":
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        kind = body.pop("kind", "http_error")
        message = body.pop("message", None) or response.text or response.reason or ""
        return cls(response.status_code, kind, message, body)


class AttemptsApi:
    """Thin requests wrapper over the task-attempt endpoints."""

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8080",
        session: Optional[requests.Session] = None,
        timeout: float = 120.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def create(self, request: CreateWorkspaceRequest) -> Workspace:
        response = self.session.post(
            f"{self.base_url}/api/task-attempts",
            json=request.model_dump(mode="json"),
            timeout=self.timeout,
        )
        if not response.ok:
            raise AttemptsApiError.from_response(response)
        return Workspace.model_validate(response.json())

    def list(self, task_id: str) -> List[Workspace]:
        response = self.session.get(
            f"{self.base_url}/api/task-attempts",
            params={"task_id": task_id},
            timeout=self.timeout,
        )
        if not response.ok:
            raise AttemptsApiError.from_response(response)
        return [Workspace.model_validate(w) for w in response.json()]

    def close(self) -> None:
        self.session.close()


class AttemptCache:
    """Per-task ordered lists of workspaces."""

    def __init__(self):
        self._by_task: Dict[str, List[Workspace]] = {}
        self._lock = threading.Lock()

    def get(self, task_id: str) -> List[Workspace]:
        with self._lock:
            return list(self._by_task.get(task_id, []))

    def set(self, task_id: str, workspaces: Sequence[Workspace]) -> None:
        with self._lock:
            self._by_task[task_id] = list(workspaces)

    def prepend(self, task_id: str, workspace: Workspace) -> None:
        with self._lock:
            self._by_task[task_id] = [workspace] + self._by_task.get(task_id, [])

    def refresh(self, task_id: str, api: AttemptsApi) -> List[Workspace]:
        """Replace the cached list with the server's."""
        workspaces = api.list(task_id)
        self.set(task_id, workspaces)
        return workspaces


class AttemptCreation:
    """Creates attempts for one task and merges results into the cache."""

    def __init__(
        self,
        task_id: str,
        api: AttemptsApi,
        cache: AttemptCache,
        on_success: Optional[Callable[[Workspace], None]] = None,
    ):
        self.task_id = task_id
        self.api = api
        self.cache = cache
        self.on_success = on_success
        self.is_creating = False
        self.error: Optional[Exception] = None

    def create_attempt(
        self,
        profile: ExecutorProfileId,
        repos: Sequence[WorkspaceRepoInput],
    ) -> Workspace:
        """
        Request a new workspace and prepend it to the task's cached list.

        Raises:
            AttemptsApiError: The server rejected the request (also kept in ``error``)
            requests.RequestException: Transport failure (also kept in ``error``)
        """
        self.is_creating = True
        self.error = None
        try:
            workspace = self.api.create(CreateWorkspaceRequest(
                task_id=self.task_id,
                executor_profile_id=profile,
                repos=list(repos),
                branch_name=None,
            ))
        except (AttemptsApiError, requests.RequestException) as e:
            self.error = e
            logger.warning(f"Attempt creation failed for task {self.task_id}: {e}")
            raise
        finally:
            self.is_creating = False

        self.cache.prepend(self.task_id, workspace)
        if self.on_success is not None:
            self.on_success(workspace)
        return workspace
