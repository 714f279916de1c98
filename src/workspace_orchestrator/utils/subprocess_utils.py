"""git invocation with uniform error reporting."""

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

# Callers match git's English stderr; a credential prompt would hang until timeout
GIT_ENV_OVERRIDES = {"LC_ALL": "C", "GIT_TERMINAL_PROMPT": "0"}


class SubprocessError(Exception):
    """A git command exited non-zero."""

    def __init__(self, cmd: str, returncode: int, stderr: str, stdout: str = ""):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        super().__init__(f"{cmd} exited with {returncode}: {stderr.strip()}")


def run_git_command(
    args: List[str],
    *,
    cwd: Optional[Path] = None,
    check: bool = True,
    timeout: float = 30,
) -> subprocess.CompletedProcess:
    """
    Run ``git <args>`` and capture its output as text.

    Args:
        args: Git command arguments (without 'git' prefix)
        cwd: Repository or worktree to run in
        check: Raise on non-zero exit instead of returning the result
        timeout: Timeout in seconds

    Raises:
        SubprocessError: If check=True and git fails
        subprocess.TimeoutExpired: If timeout exceeded
    """
    cmd = ["git", *args]
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
            env={**os.environ, **GIT_ENV_OVERRIDES},
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.error(f"git {' '.join(args)} timed out after {timeout}s in {cwd}")
        raise

    if check and result.returncode != 0:
        # Callers decide whether this is fatal (stale entries are retried)
        logger.debug(f"git {' '.join(args)} failed in {cwd}: {result.stderr.strip()}")
        raise SubprocessError(
            cmd=" ".join(cmd),
            returncode=result.returncode,
            stderr=result.stderr or "",
            stdout=result.stdout or "",
        )
    return result
