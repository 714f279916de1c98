"""Shared utility functions for the workspace orchestrator."""

from .atomic_io import atomic_write_json
from .rich_logging import ContextLogger, WorkspaceLogFormatter, setup_rich_logging
from .subprocess_utils import SubprocessError, run_git_command
from .validators import slugify, validate_branch_name, validate_identifier

__all__ = [
    # Atomic I/O
    "atomic_write_json",
    # Logging
    "ContextLogger",
    "WorkspaceLogFormatter",
    "setup_rich_logging",
    # Subprocess utilities
    "SubprocessError",
    "run_git_command",
    # Validators
    "slugify",
    "validate_branch_name",
    "validate_identifier",
]
