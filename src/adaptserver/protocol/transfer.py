"""
=============================================================================
TRANSFER SESSION
=============================================================================

Drives one accepted connection through the upload protocol: header, payload,
acknowledgement, trigger.

=============================================================================
SESSION STATE MACHINE
=============================================================================

    AWAIT_HEADER ──────► RECEIVING_PAYLOAD ──────► TRIGGERING ──────► DONE
         │                       │                      │
         │  short header         │  file write failed   │  ack not sent
         │  file open failed     │                      │
         ▼                       ▼                      ▼
    ┌──────────────────────────────────────────────────────────┐
    │                         ABORTED                          │
    └──────────────────────────────────────────────────────────┘

    AWAIT_HEADER       read exactly 104 bytes, open dest_dir/file_name
    RECEIVING_PAYLOAD  read chunks until end of stream, append to file
    TRIGGERING         close file, send "start adaptation...", run trigger
    DONE / ABORTED     close the connection

=============================================================================
END OF STREAM
=============================================================================

The payload is streamed until the client closes the connection or stops
sending for longer than the read timeout. payload_length from the header is
NOT used to stop reading and is never checked against the bytes written; a
mismatch is only logged at debug level.

=============================================================================
ORDERING CONTRACT
=============================================================================

The client is told the job has started BEFORE the trigger runs:

    client                          server
      │  header + payload + FIN       │
      │ ─────────────────────────────►│
      │                               │  close file
      │ ◄──── "start adaptation...\\n" │
      │                               │  run trigger (blocks)
      │                               │  log outcome
      │ ◄──────────── FIN ─────────── │

The trigger's outcome is only logged; the client never hears about it.
Any abort before the acknowledgement leaves the client with silence.

=============================================================================
"""

import logging
import time
from enum import Enum
from typing import Optional

from ..config import Framing, ServerConfig
from ..core.connection import Connection
from ..logs import SessionLog, emit
from ..storage.file_sink import FileSink, SinkError, destination_path
from ..trigger.process import TriggerResult
from .frames import ACK_LINE, HEADER_SIZE, FrameError, TransferHeader


logger = logging.getLogger(__name__)


class SessionState(Enum):
    """States of a transfer session."""
    AWAIT_HEADER = "await_header"
    RECEIVING_PAYLOAD = "receiving_payload"
    TRIGGERING = "triggering"
    DONE = "done"
    ABORTED = "aborted"


class SessionAborted(Exception):
    """
    Raised inside a session to end it early.

    Attributes:
        state: State the session was in when it gave up.
    """

    def __init__(self, message: str, state: SessionState):
        super().__init__(message)
        self.state = state


class TransferSession:
    """
    One upload, from header to trigger.

    A session object handles exactly one connection and is then discarded.

    Args:
        config: Server configuration (framing, unit, chunk size, dest_dir).
        trigger: Object with submit(path) -> Future[TriggerResult], usually
                 a TriggerWorker.
    """

    def __init__(self, config: ServerConfig, trigger):
        self.config = config
        self.trigger = trigger

        self.state = SessionState.AWAIT_HEADER
        self.header: Optional[TransferHeader] = None
        self.file_name: Optional[str] = None
        self.path: Optional[str] = None
        self.trigger_result: Optional[TriggerResult] = None
        self._sink: Optional[FileSink] = None

    @property
    def bytes_written(self) -> int:
        return self._sink.bytes_written if self._sink else 0

    def run(self, conn: Connection) -> SessionState:
        """
        Process the connection to completion.

        Never raises for protocol, I/O or trigger failures: they end the
        session in ABORTED (or DONE with a failed trigger) and are logged.
        The connection is always closed on return.

        Returns:
            The final state, DONE or ABORTED.
        """
        start_time = time.time()

        try:
            self._receive_header(conn)
            self._receive_payload(conn)
            self._trigger(conn)
            self.state = SessionState.DONE
        except SessionAborted as e:
            logger.warning(f"[{conn.id}] Session aborted during {e.state.value}: {e}")
            self.state = SessionState.ABORTED
        finally:
            if self._sink:
                self._sink.close()
            conn.close()

        self._log(conn, start_time)
        return self.state

    # =========================================================================
    # AWAIT_HEADER
    # =========================================================================

    def _receive_header(self, conn: Connection):
        if self.config.framing is Framing.HEADERLESS:
            file_name = self.config.headerless_file_name
        else:
            self.header = self._read_header(conn)
            file_name = self.header.file_name
            logger.info(
                f"[{conn.id}] Header: file_name={file_name!r} "
                f"payload_length={self.header.payload_length}"
            )

        self.file_name = file_name
        self.path = destination_path(self.config.dest_dir, file_name)
        sink = FileSink(self.path)
        try:
            sink.open()
        except SinkError as e:
            logger.error(f"[{conn.id}] {e}")
            raise SessionAborted(f"cannot open {self.path}", self.state) from e
        self._sink = sink

    def _read_header(self, conn: Connection) -> TransferHeader:
        width = self.config.unit.width
        units = -(-HEADER_SIZE // width)

        if not conn.read_chunk(units) or conn.bytes_available < units:
            raise SessionAborted(
                f"short header ({conn.bytes_available * width} of {HEADER_SIZE} bytes)",
                self.state,
            )

        raw = bytearray(units * width)
        conn.get_buffer(raw, units)
        try:
            return TransferHeader.parse(raw)
        except FrameError as e:
            raise SessionAborted(str(e), self.state) from e

    # =========================================================================
    # RECEIVING_PAYLOAD
    # =========================================================================

    def _receive_payload(self, conn: Connection):
        self.state = SessionState.RECEIVING_PAYLOAD

        chunk_size = self.config.chunk_size
        width = self.config.unit.width
        chunk = bytearray(chunk_size * width)

        while conn.read_chunk(chunk_size):
            count = conn.get_buffer(chunk, chunk_size)
            with memoryview(chunk) as view, view[:count * width] as data:
                try:
                    self._sink.write(data)
                except SinkError as e:
                    logger.error(f"[{conn.id}] {e}")
                    raise SessionAborted(f"write to {self.path} failed", self.state) from e

        logger.info(f"[{conn.id}] End of stream, {self.bytes_written} bytes written to {self.path}")

        if self.header and self.header.payload_length != self.bytes_written:
            logger.debug(
                f"[{conn.id}] Header announced {self.header.payload_length} bytes, "
                f"received {self.bytes_written}"
            )

    # =========================================================================
    # TRIGGERING
    # =========================================================================

    def _trigger(self, conn: Connection):
        self.state = SessionState.TRIGGERING
        self._sink.close()

        if not conn.write_line(ACK_LINE):
            raise SessionAborted("could not send acknowledgement", self.state)

        try:
            self.trigger_result = self.trigger.submit(self.path).result()
        except Exception as e:
            logger.error(f"[{conn.id}] Trigger did not complete for {self.path}: {e}")

    def _log(self, conn: Connection, start_time: float):
        emit(
            SessionLog(
                session_id=conn.id,
                variant="transfer",
                client_ip=conn.client_ip,
                file_name=self.file_name,
                bytes_written=self.bytes_written,
                declared_length=self.header.payload_length if self.header else None,
                state=self.state.value,
                trigger=self.trigger_result.outcome.value if self.trigger_result else None,
                duration_ms=(time.time() - start_time) * 1000,
            ),
            self.config.log_format,
        )
