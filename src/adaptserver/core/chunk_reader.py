"""
=============================================================================
TIMEOUT-BOUNDED CHUNK READER
=============================================================================

Reads fixed-size chunks from a connected socket, giving up on a chunk when
the client goes quiet for longer than the read timeout.

=============================================================================
ONE CHUNK, MANY recv() CALLS
=============================================================================

TCP is a byte stream, so asking for 2048 bytes can take several recv()
calls. Each one is preceded by a bounded wait for readability:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        read_chunk(n) Flow                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   n changed since last call?  ──yes──►  reallocate buffer            │
    │          │                                                           │
    │          ▼                                                           │
    │   while remaining > 0:                                               │
    │       select(timeout) ── timed out ──► stop (short chunk)            │
    │          │            ── error ──────► stop                          │
    │          ▼                                                           │
    │       recv_into(remaining) ── 0 bytes ─► stop (peer closed)          │
    │          │                                                           │
    │          └── remaining -= received                                   │
    │                                                                      │
    │   bytes_available = received // unit_width                           │
    │   return bytes_available > 0                                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Timeout, error and EOF all look the same to the caller: either the call
returns False, or it returns True with fewer units than requested. Callers
that need an exact length must compare bytes_available themselves.

=============================================================================
BUFFER REUSE
=============================================================================

The buffer is sized to the requested chunk and reallocated only when a
request asks for a different length. A steady-state transfer asks for the
same chunk size over and over and so reads into the same bytearray.

=============================================================================
"""

import logging
import select
import socket
from typing import Optional


logger = logging.getLogger(__name__)


class ChunkReader:
    """
    Buffered, timeout-bounded reader over a connected socket.

    Lengths are counted in units. A unit is one byte for file transfers and
    two bytes for 16-bit audio samples.

    Attributes:
        sock: The connected client socket.
        read_timeout: Seconds to wait for readability, None to block.
        unit_width: Size of one unit in bytes.
    """

    def __init__(self, sock: socket.socket, read_timeout: Optional[float], unit_width: int = 1):
        if unit_width < 1:
            raise ValueError(f"unit_width must be >= 1, got {unit_width}")

        self.sock = sock
        self.read_timeout = read_timeout
        self.unit_width = unit_width

        self._buffer = bytearray()
        self._requested = 0
        self._available = 0

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def bytes_available(self) -> int:
        """Units read by the last read_chunk() call."""
        return self._available

    @property
    def capacity(self) -> int:
        """Buffer capacity in units."""
        return len(self._buffer) // self.unit_width

    @property
    def requested(self) -> int:
        """Unit count of the most recent request."""
        return self._requested

    # =========================================================================
    # READING
    # =========================================================================

    def read_chunk(self, n: int) -> bool:
        """
        Read up to n units into the internal buffer.

        Args:
            n: Number of units to request.

        Returns:
            True if at least one whole unit was read.
        """
        if n < 0:
            raise ValueError(f"Chunk length must be >= 0, got {n}")

        if n != self._requested:
            self._requested = n
            self._buffer = bytearray(n * self.unit_width)

        view = memoryview(self._buffer)
        to_read = n * self.unit_width
        has_read = 0

        while to_read > 0:
            try:
                readable, _, _ = select.select([self.sock], [], [], self.read_timeout)
            except (OSError, ValueError) as e:
                logger.warning(f"Socket error while waiting for data: {e}")
                break

            if not readable:
                logger.warning(f"Socket timeout (has_read={has_read})")
                break

            try:
                received = self.sock.recv_into(view[has_read:], to_read)
            except OSError as e:
                logger.warning(f"Socket error while reading: {e}")
                break

            if received <= 0:
                logger.debug("Stream over")
                break

            to_read -= received
            has_read += received

        view.release()
        self._available = has_read // self.unit_width
        return self._available > 0

    def get_buffer(self, dst, max_len: int) -> int:
        """
        Copy the last chunk into a caller-provided buffer.

        Copies min(bytes_available, max_len) units, further limited to what
        dst can hold, so nothing is written past max_len.

        Args:
            dst: Writable buffer (bytearray, memoryview, array).
            max_len: Maximum number of units to copy.

        Returns:
            Number of units copied.
        """
        target = memoryview(dst).cast("B")
        count = min(self._available, max(max_len, 0), len(target) // self.unit_width)
        nbytes = count * self.unit_width
        target[:nbytes] = self._buffer[:nbytes]
        target.release()
        return count
