"""JSON file persistence shared by the registries.

Each store is a single JSON document guarded by an ``fcntl`` lock file so
several processes (API server, CLI) can read and write it safely. Writes go
through a temp file + rename.
"""

import fcntl
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator

from ..utils.atomic_io import atomic_write_json

logger = logging.getLogger(__name__)


class JsonStore:
    """A lock-protected JSON document of named collections keyed by id."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _get_lock_path(self) -> Path:
        return self.path.with_suffix(".lock")

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Exclusive cross-process lock using fcntl.flock."""
        lock_file = open(self._get_lock_path(), "w")
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
            lock_file.close()

    def _read_unlocked(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            # A corrupt document must not be silently replaced with an empty one
            logger.error(f"Corrupt store file {self.path}: {e}")
            raise

    def read(self) -> Dict[str, Any]:
        """Snapshot of the whole document."""
        with self._lock():
            return self._read_unlocked()

    @contextmanager
    def transaction(self) -> Iterator[Dict[str, Any]]:
        """Read-modify-write under the lock; the yielded dict is written back on success."""
        with self._lock():
            data = self._read_unlocked()
            yield data
            atomic_write_json(self.path, data)

    def collection(self, name: str) -> Dict[str, Any]:
        """Snapshot of one collection (empty if absent)."""
        return dict(self.read().get(name, {}))
