"""Per-workspace mutual exclusion using atomic mkdir lock directories."""

import logging
import os
import shutil
import time
from pathlib import Path

from ..core.errors import WorkspaceBusy

logger = logging.getLogger(__name__)


class WorkspaceLock:
    """
    Exclusive lock keyed by workspace id.

    - mkdir is atomic, so threads and processes race safely for the same key
    - The holder's PID is stored for stale lock detection
    - A lock whose PID is no longer alive is reclaimed
    """

    def __init__(self, lock_dir: Path, workspace_id: str, timeout: float = 30.0, poll_interval: float = 0.1):
        self.lock_dir = Path(lock_dir)
        self.workspace_id = workspace_id
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.lock_path = self.lock_dir / f"{workspace_id}.lock"
        self.pid_file = self.lock_path / "pid"
        self._acquired = False

    def try_acquire(self) -> bool:
        """Attempt to acquire the lock once. Returns True on success."""
        if self.lock_path.exists():
            if self._is_stale_lock():
                logger.info(f"Removing stale lock for workspace {self.workspace_id}")
                self._remove_lock()
            else:
                return False

        try:
            self.lock_path.mkdir(parents=True, exist_ok=False)
        except FileExistsError:
            return False
        self.pid_file.write_text(str(os.getpid()))
        self._acquired = True
        logger.debug(f"Acquired lock for workspace {self.workspace_id}")
        return True

    def acquire(self) -> None:
        """Block until the lock is held.

        Raises:
            WorkspaceBusy: If the lock isn't acquired within ``timeout`` seconds
        """
        deadline = time.monotonic() + self.timeout
        while not self.try_acquire():
            if time.monotonic() >= deadline:
                raise WorkspaceBusy(self.workspace_id, self.timeout)
            time.sleep(self.poll_interval)

    def release(self) -> None:
        if self._acquired:
            self._remove_lock()
            self._acquired = False

    def _is_stale_lock(self) -> bool:
        """Check if lock is stale (holding process no longer exists)."""
        try:
            pid = int(self.pid_file.read_text().strip())
        except FileNotFoundError:
            # Holder may be between mkdir and writing its PID
            return False
        except ValueError:
            logger.warning(f"Lock for workspace {self.workspace_id} has invalid PID (stale)")
            return True

        try:
            os.kill(pid, 0)
            return False
        except ProcessLookupError:
            logger.warning(f"Lock for workspace {self.workspace_id} held by dead PID {pid} (stale)")
            return True
        except PermissionError:
            # Process exists under another user; assume the lock is live
            return False

    def _remove_lock(self) -> None:
        try:
            shutil.rmtree(self.lock_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove lock directory {self.lock_path}: {e}")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


class WorkspaceLocks:
    """Factory for workspace locks sharing one directory and timeout policy."""

    def __init__(self, lock_dir: Path, timeout: float = 30.0, poll_interval: float = 0.1):
        self.lock_dir = Path(lock_dir)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    def for_workspace(self, workspace_id: str) -> WorkspaceLock:
        return WorkspaceLock(self.lock_dir, workspace_id, self.timeout, self.poll_interval)
