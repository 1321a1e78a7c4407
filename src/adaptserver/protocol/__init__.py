"""
Wire protocol: frames and the per-connection sessions of both variants.

Only the frame definitions are imported here; the session modules depend on
the server configuration and are imported from their own modules.
"""

from .frames import (
    ACK_LINE,
    HEADER_SIZE,
    LIST_COMMAND,
    ChunkUnit,
    FrameError,
    TransferHeader,
)

__all__ = [
    "ACK_LINE",
    "HEADER_SIZE",
    "LIST_COMMAND",
    "ChunkUnit",
    "FrameError",
    "TransferHeader",
]
