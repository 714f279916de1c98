"""Crash-safe JSON document writes."""

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def atomic_write_json(file_path: Path, data: Any, max_retries: int = 3) -> None:
    """
    Serialize ``data`` and swap it into place with a temp file + rename.

    Readers see either the previous document or the new one, never a
    truncated registry.

    Raises:
        OSError: If every attempt fails
    """
    payload = json.dumps(data, indent=2, default=str)
    # Hidden, PID-suffixed temp name so concurrent writers never share one
    tmp_file = file_path.with_name(f".{file_path.name}.{os.getpid()}.tmp")

    for attempt in range(1, max_retries + 1):
        try:
            with open(tmp_file, "w") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_file, file_path)
            return
        except OSError as e:
            if attempt == max_retries:
                logger.error(f"Giving up writing {file_path} after {max_retries} attempts: {e}")
                raise
            logger.warning(f"Write to {file_path} failed (attempt {attempt}/{max_retries}): {e}")
        finally:
            tmp_file.unlink(missing_ok=True)
