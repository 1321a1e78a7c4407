"""
Payload persistence.

A FileSink writes the payload of one transfer session to its destination
file. It is opened at most once; a partial file is left on disk if the
session aborts half way.
"""

import logging
from typing import BinaryIO, Optional


logger = logging.getLogger(__name__)


class SinkError(OSError):
    """Raised when the destination file cannot be opened or written."""


def destination_path(dest_dir: str, file_name: str) -> str:
    """
    Build the destination path as dest_dir + "/" + file_name.

    The name comes straight from the wire and is NOT sanitised: a name
    containing "../" segments escapes dest_dir.
    """
    return f"{dest_dir}/{file_name}"


class FileSink:
    """Write-once destination file for one transfer."""

    def __init__(self, path: str):
        self.path = path
        self.bytes_written = 0
        self._file: Optional[BinaryIO] = None
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._file is not None

    def open(self) -> "FileSink":
        """
        Open (create or truncate) the destination file for writing.

        Raises:
            RuntimeError: If the sink was already opened once.
            SinkError: If the file cannot be opened.
        """
        if self._opened:
            raise RuntimeError(f"Sink for {self.path} was already opened")
        self._opened = True

        try:
            self._file = open(self.path, "wb")
        except OSError as e:
            raise SinkError(e.errno, f"Cannot open {self.path} for writing: {e.strerror or e}") from e

        logger.debug(f"Opened {self.path}")
        return self

    def write(self, data) -> int:
        """
        Append data to the file.

        Returns:
            Number of bytes written.

        Raises:
            SinkError: If the sink is not open or the write fails.
        """
        if self._file is None:
            raise SinkError(f"Sink for {self.path} is not open")

        try:
            written = self._file.write(data)
        except OSError as e:
            raise SinkError(e.errno, f"Write to {self.path} failed: {e.strerror or e}") from e

        if written is not None and written < len(data):
            raise SinkError(f"Short write to {self.path}: {written} of {len(data)} bytes")

        self.bytes_written += len(data)
        return len(data)

    def close(self):
        """Flush and close the file. Safe to call more than once."""
        if self._file is None:
            return
        try:
            self._file.close()
        finally:
            self._file = None
        logger.debug(f"Closed {self.path} ({self.bytes_written} bytes)")

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self):
        return f"FileSink(path={self.path!r}, bytes_written={self.bytes_written})"

