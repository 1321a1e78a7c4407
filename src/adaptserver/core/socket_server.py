"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

This module owns the listening socket and the accept loop. It knows nothing
about the upload protocol: each accepted client is wrapped in a Connection
and handed to a callback, and the loop waits for that callback to return
before accepting anyone else.

=============================================================================
SERIAL BY DESIGN
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   listen(backlog=1)                                                  │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌──► accept() ──► Connection ──► handler(conn) ──► conn.close() ─┐ │
    │   │                                                                 │ │
    │   └─────────────────────────────────────────────────────────────────┘ │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Exactly one session is active at a time. A client that connects while a
session is running waits in the kernel's backlog (depth 1) until the loop
comes back to accept().

=============================================================================
FAILURE POLICY
=============================================================================

    socket() / bind() / listen() fail   → ServerStartupError (fatal)
    accept() fails                      → logged, loop retries
    handler raises                      → logged, loop continues

=============================================================================
SIGNAL HANDLING
=============================================================================

SIGINT (Ctrl+C) and SIGTERM stop the loop between sessions. Sessions run on
the accept thread and can block for a long time (a stalled client with no
read timeout, a trigger without a bound), so a signal that arrives while a
session is running, or a second signal after the first, raises
KeyboardInterrupt instead:

    idle in accept()          → loop stops after the current poll
    session in progress       → KeyboardInterrupt, session torn down
    second signal             → KeyboardInterrupt

Signal handlers can only be installed from the main thread, so a server
started on another thread (as the tests do) is stopped by calling
shutdown() directly.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class ServerStartupError(OSError):
    """The listening socket could not be created, bound or put in listen mode."""


class SocketServer:
    """
    Sequential TCP socket server.

    Usage:
        def handle_connection(conn: Connection):
            ...

        server = SocketServer(config)
        server.listen()
        server.serve_forever(handle_connection)  # Blocks until shutdown
    """

    ACCEPT_POLL_INTERVAL = 1.0

    def __init__(self, config: ServerConfig):
        """
        Initialize the socket server.

        Args:
            config: Server configuration (host, port, backlog, read timeout).

        Note: The socket is created in listen(), not here.
        """
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._in_session = False
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}

        self.connections_accepted = 0

    @property
    def is_running(self) -> bool:
        """Check if the accept loop is running."""
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the real port once listen() has run."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    # =========================================================================
    # LISTEN
    # =========================================================================

    def listen(self):
        """
        Create the listening socket.

        SO_REUSEADDR lets a restarted server bind while the old socket is in
        TIME_WAIT. The accept() call gets a short timeout so the loop can
        notice shutdown() between clients.

        Raises:
            ServerStartupError: If socket creation, bind or listen fails.
        """
        host, port = self.config.host, self.config.port

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            logger.error(f"Cannot create TCP socket: {e}")
            raise ServerStartupError(e.errno, f"Cannot create TCP socket: {e}") from e

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Cannot bind/listen on {host}:{port} (is it taken?): {e}")
            raise ServerStartupError(e.errno, f"Cannot listen on {host}:{port}: {e}") from e

        sock.settimeout(self.ACCEPT_POLL_INTERVAL)
        self._socket = sock
        logger.info(f"Listening on {self.address[0]}:{self.address[1]}")

    # =========================================================================
    # ACCEPT
    # =========================================================================

    def accept(self) -> Optional[Connection]:
        """
        Wait for the next client.

        Returns:
            A Connection, or None if nothing arrived within the poll interval
            or accept() failed (the caller simply tries again).
        """
        if self._socket is None:
            raise RuntimeError("accept() called before listen()")

        try:
            client_socket, client_address = self._socket.accept()
        except socket.timeout:
            return None
        except OSError as e:
            if self._running:
                logger.error(f"Accept failed: {e}")
            return None

        self.connections_accepted += 1
        logger.info(f"Accepted connection from: {client_address[0]}:{client_address[1]}")

        return Connection(
            socket=client_socket,
            address=client_address,
            read_timeout=self.config.read_timeout,
            unit_width=self.config.unit.width,
        )

    def serve_forever(self, connection_handler: Callable[[Connection], None]):
        """
        Run the accept loop until shutdown().

        Each connection is handled to completion, then closed, before the
        next accept(). Whatever happens inside the handler, the loop goes on.

        Args:
            connection_handler: Called once per accepted connection.
        """
        if self._socket is None:
            self.listen()

        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()

        try:
            while self._running:
                conn = self.accept()
                if conn is None:
                    continue

                self._in_session = True
                try:
                    connection_handler(conn)
                except Exception as e:
                    logger.exception(f"[{conn.id}] Session error: {e}")
                finally:
                    self._in_session = False
                    conn.close()
        finally:
            self._cleanup()

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def _setup_signals(self):
        """Install SIGTERM/SIGINT handlers when running on the main thread."""
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            if self._in_session or not self._running:
                logger.warning(f"Received {signal_name} while busy, interrupting")
                self._running = False
                raise KeyboardInterrupt(signal_name)
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def shutdown(self):
        """Stop the accept loop after the current session. Idempotent."""
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None

        self._running = False
        self._shutdown_event.set()
        logger.info(f"Socket server stopped after {self.connections_accepted} connections")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the server to shut down.

        Returns:
            True if shutdown completed, False on timeout.
        """
        return self._shutdown_event.wait(timeout)
