"""
Model listing session.

The listing server answers a single command. The client sends a fixed-size
command buffer; if it holds "list", the server replies with the entries of
the model directory, each followed by '#', on one line:

    client → server:  b"list\\0\\0..."            (command_size bytes)
    server → client:  "a.mdl#b.mdl#\\n"

Anything else gets no reply. Entries come in directory enumeration order,
not sorted.
"""

import logging
import os
import time
from typing import List, Optional

from ..config import ServerConfig
from ..core.connection import Connection
from ..logs import SessionLog, emit
from .frames import LIST_COMMAND, format_listing, parse_command


logger = logging.getLogger(__name__)


def scan_models(model_dir: str) -> List[str]:
    """
    Return the entry names of model_dir, in enumeration order.

    Raises:
        OSError: If the directory cannot be read.
    """
    return [name for name in os.listdir(model_dir) if name not in (".", "..")]


class ListingSession:
    """Handles one connection of the listing variant."""

    def __init__(self, config: ServerConfig):
        self.config = config
        self.command: Optional[bytes] = None
        self.replied = False

    def run(self, conn: Connection) -> bool:
        """
        Read one command and answer it.

        Returns:
            True if a listing was sent.
        """
        start_time = time.time()

        try:
            if conn.read_chunk(self.config.command_size):
                buffer = bytearray(self.config.command_size * conn.unit_width)
                count = conn.get_buffer(buffer, self.config.command_size)
                self.command = parse_command(buffer[:count * conn.unit_width])

            if self.command == LIST_COMMAND:
                self.replied = self._reply(conn)
            else:
                logger.info(f"[{conn.id}] Ignoring command {self.command!r}")
        finally:
            conn.close()

        emit(
            SessionLog(
                session_id=conn.id,
                variant="listing",
                client_ip=conn.client_ip,
                file_name=self.command.decode("utf-8", errors="replace") if self.command else None,
                state="replied" if self.replied else "ignored",
                duration_ms=(time.time() - start_time) * 1000,
            ),
            self.config.log_format,
        )
        return self.replied

    def _reply(self, conn: Connection) -> bool:
        try:
            names = scan_models(self.config.model_dir)
        except OSError as e:
            logger.error(f"[{conn.id}] Cannot list {self.config.model_dir}: {e}")
            return False

        logger.info(f"[{conn.id}] Listing {len(names)} models from {self.config.model_dir}")
        return conn.write_line(format_listing(names))
