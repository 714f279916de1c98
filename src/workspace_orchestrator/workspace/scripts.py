"""Cleanup script execution.

A script receives nothing but its working directory; its exit status is the
only signal the orchestrator consumes.
"""

import logging
import os
import signal
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

# Output kept on the result for logging; scripts can be chatty
MAX_OUTPUT_CHARS = 4000


@dataclass
class ScriptResult:
    """Exit status of one script invocation."""
    exit_code: Optional[int]
    timed_out: bool = False
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None  # set when the script could not be started

    @property
    def succeeded(self) -> bool:
        return not self.timed_out and self.error is None and self.exit_code == 0

    def describe(self) -> str:
        if self.timed_out:
            return "timed out"
        if self.error:
            return self.error
        tail = self.stderr.strip().splitlines()[-1:] or self.stdout.strip().splitlines()[-1:]
        suffix = f": {tail[0]}" if tail else ""
        return f"exit code {self.exit_code}{suffix}"


class ScriptRunner(Protocol):
    """Capability to run a script in a directory with a timeout."""

    def run(self, script: str, working_dir: Path, timeout: float) -> ScriptResult:
        ...


def kill_process_tree(pid: int, sig: int = signal.SIGKILL) -> None:
    """Signal a script's whole process group, falling back to the single process."""
    try:
        os.killpg(os.getpgid(pid), sig)
    except (ProcessLookupError, PermissionError):
        pass
    except OSError:
        try:
            os.kill(pid, sig)
        except (ProcessLookupError, PermissionError):
            pass


class ShellScriptRunner:
    """Runs scripts with ``<shell> -c`` in their own process group.

    Output goes to temporary files rather than pipes: only the shell's exit
    matters, so children left running in the background neither hold the
    script open nor count against its timeout.
    """

    def __init__(self, shell: str = "/bin/sh"):
        self.shell = shell

    def run(self, script: str, working_dir: Path, timeout: float) -> ScriptResult:
        with tempfile.TemporaryFile() as out, tempfile.TemporaryFile() as err:
            try:
                proc = subprocess.Popen(
                    [self.shell, "-c", script],
                    cwd=working_dir,
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=err,
                    start_new_session=True,
                )
            except OSError as e:
                logger.warning(f"Could not start cleanup script in {working_dir}: {e}")
                return ScriptResult(exit_code=None, error=f"failed to start: {e}")

            timed_out = False
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                # Kill the group so background children of the script go too
                kill_process_tree(proc.pid)
                proc.wait()
                timed_out = True

            stdout = _read_output(out)
            stderr = _read_output(err)

        if timed_out:
            logger.warning(f"Cleanup script in {working_dir} timed out after {timeout}s")
        else:
            logger.debug(
                f"Cleanup script in {working_dir} exited {proc.returncode}; "
                f"stdout={stdout[-500:]!r} stderr={stderr[-500:]!r}"
            )
        return ScriptResult(
            exit_code=proc.returncode,
            timed_out=timed_out,
            stdout=stdout,
            stderr=stderr,
        )


def _read_output(f) -> str:
    """Tail of a captured stream, decoded leniently."""
    f.seek(0, os.SEEK_END)
    size = f.tell()
    # 4 bytes per char covers any UTF-8 sequence
    f.seek(max(0, size - MAX_OUTPUT_CHARS * 4))
    return f.read().decode("utf-8", errors="replace")[-MAX_OUTPUT_CHARS:]
