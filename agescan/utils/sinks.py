"""
Output Sinks - Lock-Guarded Text Files

Every output file (one per age bucket, the combined result, one failure list
per pass) is wrapped in a LockedSink. Each sink has its own lock, so writers
to different files never block each other.
"""

import logging
import threading
from pathlib import Path
from typing import Iterable, Optional, TextIO

logger = logging.getLogger(__name__)


class LockedSink:
    """Text stream guarded by its own lock."""

    def __init__(self, stream: TextIO, name: str = "") -> None:
        self.stream = stream
        self.name = name or getattr(stream, "name", "<stream>")
        self.lock = threading.Lock()

    def write_lines(self, lines: Iterable[str]) -> None:
        """Write lines (newline-terminated) and flush, as one block."""
        with self.lock:
            for line in lines:
                self.stream.write(line)
                self.stream.write("\n")
            self.stream.flush()

    def close(self) -> None:
        with self.lock:
            if not self.stream.closed:
                self.stream.close()


def open_sink(path: str | Path, header: Optional[str] = None) -> LockedSink:
    """
    Create (truncate) a text file and wrap it in a LockedSink.

    Args:
        path: File to create; parent directories are created if missing
        header: Optional first line written immediately

    Returns:
        LockedSink over the opened file
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    sink = LockedSink(open(file_path, "w", encoding="utf-8"), name=str(file_path))
    if header is not None:
        sink.write_lines([header])

    logger.debug("Opened output: %s", str(file_path))
    return sink


def read_ids(path: str | Path) -> list[int]:
    """
    Read identifiers written one per line by a failure sink.

    Blank lines are ignored and surrounding whitespace is stripped; file
    order is preserved.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If a line is not an integer
    """
    with open(path, "r", encoding="utf-8") as f:
        return [int(line.strip()) for line in f if line.strip()]
