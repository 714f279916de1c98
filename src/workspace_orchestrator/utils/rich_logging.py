"""Console and file logging with workspace context."""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "workspace_orchestrator"


class WorkspaceLogFormatter(logging.Formatter):
    """Formatter that prefixes messages with workspace, repo and phase context."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        context = ""
        if getattr(record, "workspace_id", None):
            context += f"[{record.workspace_id[:8]}] "
        if getattr(record, "phase", None):
            context += f"[{record.phase}] "
        if getattr(record, "repo", None):
            context += f"[{record.repo}] "

        if self.use_colors:
            level_color = self.LEVEL_COLORS.get(record.levelname, "")
            reset = "\033[0m"
        else:
            level_color = ""
            reset = ""

        message = (
            f"{timestamp} {level_color}{record.levelname:8s}{reset} "
            f"{context}{record.getMessage()}"
        )
        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class ContextLogger(logging.LoggerAdapter):
    """Logger adapter that tags every message with the current workspace context."""

    def __init__(self, logger: logging.Logger, workspace_id: Optional[str] = None):
        super().__init__(logger, {})
        self.workspace_id = workspace_id
        self.phase: Optional[str] = None
        self.repo: Optional[str] = None

    def set_context(self, phase: Optional[str] = None, repo: Optional[str] = None):
        """Set the phase and repository attached to subsequent messages."""
        self.phase = phase
        self.repo = repo

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        if self.workspace_id:
            extra["workspace_id"] = self.workspace_id
        if self.phase:
            extra["phase"] = self.phase
        if self.repo:
            extra["repo"] = self.repo
        kwargs["extra"] = extra
        return msg, kwargs


def setup_rich_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    use_colors: bool = True,
) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path of a plain-text log file
        use_colors: Emit ANSI colors on the console

    Returns:
        The configured package root logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Close existing handlers before clearing (prevents file descriptor leak)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(
        WorkspaceLogFormatter(use_colors=use_colors and sys.stderr.isatty())
    )
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(WorkspaceLogFormatter(use_colors=False))
        logger.addHandler(file_handler)

    return logger
