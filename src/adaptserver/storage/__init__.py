"""Payload persistence."""

from .file_sink import FileSink, SinkError, destination_path

__all__ = ["FileSink", "SinkError", "destination_path"]
