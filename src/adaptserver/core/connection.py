"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with the small read/write API
the sessions need: chunked reads through a ChunkReader, whole-message
writes, line writes and an idempotent close.

=============================================================================
OWNERSHIP
=============================================================================

A Connection is owned by exactly one session. The session reads from it,
writes its single reply line (if any) and closes it, on success or failure.
The server never touches a Connection again once the session returns.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ◄──────► WRITING
     │             │                │
     │             ▼                │
     └────────► CLOSED ◄────────────┘

=============================================================================
"""

import socket
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional

from .chunk_reader import ChunkReader


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, used for logging and close bookkeeping."""
    NEW = "new"            # Just accepted
    READING = "reading"    # Inside read_chunk()
    WRITING = "writing"    # Sending a reply
    CLOSED = "closed"      # Socket released


@dataclass
class Connection:
    """
    Represents one accepted client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. CHUNKED READING                                                  │
    │     └── read_chunk(n) waits at most read_timeout per recv()         │
    │     └── get_buffer() copies the last chunk out                       │
    │                                                                      │
    │  2. WRITING                                                          │
    │     └── write() loops until every byte is sent                       │
    │     └── write_line() appends the terminator only on success          │
    │                                                                      │
    │  3. CLOSE                                                            │
    │     └── Idempotent; safe from every session exit path                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        read_timeout: Seconds to wait for data per chunk read, None to block.
        unit_width: Bytes per chunk unit (1 for bytes, 2 for samples).
        id: Short connection identifier for log lines.
        state: Current connection state.
        created_at: Timestamp when the connection was accepted.
    """

    # Required parameters
    socket: socket.socket
    address: tuple

    # Configuration (passed from ServerConfig)
    read_timeout: Optional[float] = 3.0
    unit_width: int = 1

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    # Internal state (not shown in repr for cleaner logs)
    _reader: ChunkReader = field(default=None, repr=False)

    def __post_init__(self):
        # Readiness is polled with select(), so the socket itself blocks
        self.socket.setblocking(True)
        self._reader = ChunkReader(self.socket, self.read_timeout, self.unit_width)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        """Get the client IP address."""
        return self.address[0] if self.address else "-"

    @property
    def bytes_available(self) -> int:
        """Units read by the last read_chunk() call."""
        return self._reader.bytes_available

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_chunk(self, n: int) -> bool:
        """
        Read up to n units from the client.

        Returns:
            True if at least one unit arrived. A partial chunk counts as
            success; check bytes_available when the exact length matters.
        """
        if self.is_closed:
            return False

        self.state = ConnectionState.READING
        return self._reader.read_chunk(n)

    def get_buffer(self, dst, max_len: int) -> int:
        """Copy at most max_len units of the last chunk into dst."""
        return self._reader.get_buffer(dst, max_len)

    # =========================================================================
    # WRITING
    # =========================================================================

    def write(self, data: bytes) -> bool:
        """
        Send data to the client.

        Loops on send() until every byte is written. A failed or zero-length
        send cannot be resumed and makes the whole write fail.

        Returns:
            True if all data was sent.
        """
        if self.is_closed:
            return False

        self.state = ConnectionState.WRITING
        view = memoryview(data)
        sent = 0

        try:
            while sent < len(view):
                ret = self.socket.send(view[sent:])
                if ret <= 0:
                    logger.warning(f"[{self.id}] Send made no progress")
                    return False
                sent += ret
            return True
        except OSError as e:
            # ConnectionResetError and BrokenPipeError are OSError subclasses
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        finally:
            view.release()

    def write_line(self, text: str, eol: str = "\n") -> bool:
        """
        Write text followed by eol; eol is skipped if the text write failed.

        File names from os.listdir may carry surrogate-escaped bytes; they
        are sent as the original bytes.
        """
        if self.write(text.encode("utf-8", errors="surrogateescape")):
            return self.write(eol.encode("utf-8"))
        return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """Close the socket. Calling close() again is a no-op."""
        if self.state == ConnectionState.CLOSED:
            return

        try:
            self.socket.close()
        except OSError:
            pass  # Already gone

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {time.time() - self.created_at:.3f}s")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
