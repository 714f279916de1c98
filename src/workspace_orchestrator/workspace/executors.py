"""Executor profile validation.

Deciding how a task's commands run is not this package's concern; it only
needs to reject profiles nobody recognizes before touching the filesystem.
"""

from typing import Iterable, Protocol

from ..core.models import ExecutorProfileId


class ExecutorProfileValidator(Protocol):
    def is_known(self, profile: ExecutorProfileId) -> bool:
        ...


class ConfiguredProfiles:
    """Accepts any variant of an executor listed in configuration."""

    def __init__(self, executors: Iterable[str]):
        self.executors = {e.upper() for e in executors}

    def is_known(self, profile: ExecutorProfileId) -> bool:
        return profile.executor.upper() in self.executors
