"""
Logging Utility - Console and Progress Logging

Provides centralized logging configuration for the scanner plus the
plain-text progress log that receives timestamped status lines for every pass.

Usage:
    from agescan.utils.logging import ProgressLog, setup_logging

    setup_logging(settings.LOG_LEVEL)
    progress = ProgressLog.to_file("log.txt")
    progress.write("Attempt 1")
"""

import logging
import sys
import threading
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
PROGRESS_FORMAT = "%(asctime)s %(message)s"
PROGRESS_LOGGER = "agescan.progress"


def setup_logging(level: str = "INFO") -> None:
    """Configure application-wide console logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=CONSOLE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


class ProgressLog:
    """
    Timestamped status log shared by every pass.

    All writes go through ``lock`` so that a multi-line report (progress plus
    estimate, or a failure with its traceback) is never interleaved with
    another batch's report.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(PROGRESS_LOGGER)
        self.lock = threading.Lock()
        self._handler: Optional[logging.Handler] = None

    @classmethod
    def to_file(cls, path: str | Path) -> "ProgressLog":
        """Create a progress log writing to ``path`` (truncated)."""
        logger = logging.getLogger(PROGRESS_LOGGER)
        handler = logging.FileHandler(path, mode="w", encoding="utf-8")
        handler.setFormatter(logging.Formatter(PROGRESS_FORMAT))
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        # log.txt is the only destination for progress lines
        logger.propagate = False

        progress = cls(logger)
        progress._handler = handler
        return progress

    def write(self, *lines: str) -> None:
        """Write status lines as one uninterrupted block."""
        with self.lock:
            self.write_unlocked(*lines)

    def write_unlocked(self, *lines: str) -> None:
        """Write status lines; caller must already hold ``lock``."""
        for line in lines:
            self.logger.info(line)

    def exception(self, message: str, exc: BaseException) -> None:
        """Write a message followed by the traceback of ``exc``; caller holds ``lock``."""
        self.logger.error(message, exc_info=(type(exc), exc, exc.__traceback__))

    def close(self) -> None:
        """Detach and close the file handler, if this log owns one."""
        if self._handler is not None:
            self.logger.removeHandler(self._handler)
            self._handler.close()
            self._handler = None
            self.logger.propagate = True
