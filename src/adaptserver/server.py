"""
=============================================================================
ADAPTATION SERVER
=============================================================================

The orchestrator: ties the socket server, the per-variant sessions and the
trigger worker into one runnable service.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    ADAPTATION SERVER ARCHITECTURE                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                      ┌───────────────────┐                          │
    │                      │ AdaptationServer  │                          │
    │                      │  (Orchestrator)   │                          │
    │                      └─────────┬─────────┘                          │
    │                                │                                     │
    │           ┌────────────────────┼────────────────────┐               │
    │           │                    │                    │               │
    │           ▼                    ▼                    ▼               │
    │   ┌──────────────┐    ┌────────────────┐    ┌──────────────┐        │
    │   │ SocketServer │    │ TransferSession│    │TriggerWorker │        │
    │   │ (Networking) │    │ ListingSession │    │ (External    │        │
    │   └──────┬───────┘    │  (Protocol)    │    │  pipeline)   │        │
    │          │            └───────┬────────┘    └──────────────┘        │
    │          ▼                    ▼                                      │
    │   ┌──────────────┐    ┌──────────────┐                              │
    │   │  Connection  │    │   FileSink   │                              │
    │   └──────────────┘    └──────────────┘                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SESSION LIFECYCLE
=============================================================================

    1. CLIENT CONNECTS
       └── SocketServer accepts, wraps the socket in a Connection

    2. SESSION RUNS (on the accept thread, nothing else is accepted)
       └── transfer: header → payload → ack → trigger
       └── listing:  command → directory listing

    3. CONNECTION CLOSED
       └── loop returns to accept()

=============================================================================
"""

import logging
from typing import Optional

from .config import ServerConfig, ServerVariant
from .core import Connection, SocketServer
from .protocol.listing import ListingSession
from .protocol.transfer import TransferSession
from .trigger import ProcessTrigger, TriggerWorker


logger = logging.getLogger(__name__)


class AdaptationServer:
    """
    Upload-and-adapt server, or model-listing server, depending on
    config.variant.

    Usage:
        config = ServerConfig.for_transfer("/data/uploads", "/opt/adapt/run.sh")
        server = AdaptationServer(config)
        server.run()  # Blocks until SIGINT/SIGTERM or shutdown()
    """

    def __init__(self, config: ServerConfig, trigger: Optional[ProcessTrigger] = None):
        """
        Initialize the server.

        Args:
            config: Server configuration; validated here.
            trigger: Trigger to run after each transfer. Built from
                     config.trigger_command when not given.
        """
        self.config = config
        self.config.validate()  # Fail-fast on invalid config

        self._socket_server = SocketServer(self.config)

        self._worker: Optional[TriggerWorker] = None
        if self.config.variant is ServerVariant.TRANSFER:
            trigger = trigger or ProcessTrigger(
                self.config.trigger_command,
                timeout=self.config.trigger_timeout,
            )
            self._worker = TriggerWorker(trigger)

        self.sessions_handled = 0
        self.last_session = None

    @property
    def address(self):
        """Bound (host, port) of the listening socket."""
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    def listen(self):
        """Bind the listening socket (raises ServerStartupError on failure)."""
        self._socket_server.listen()

    def run(self):
        """
        Start the server (blocking).

        Raises:
            ServerStartupError: If the listening socket cannot be set up.
        """
        self._setup_logging()
        if self._worker is not None and not self._worker.is_alive():
            self._worker.start()

        logger.info(
            f"Starting {self.config.variant.value} server on "
            f"{self.config.host}:{self.config.port}"
        )

        try:
            self._socket_server.serve_forever(self._handle_connection)
        finally:
            self._shutdown()

    def shutdown(self):
        """Stop accepting after the current session."""
        self._socket_server.shutdown()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_for_shutdown(timeout)

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("adaptserver").setLevel(level)

    def _handle_connection(self, conn: Connection):
        """Run one session to completion on the accept thread."""
        if self.config.variant is ServerVariant.LISTING:
            session = ListingSession(self.config)
        else:
            session = TransferSession(self.config, self._worker)

        self.last_session = session
        session.run(conn)
        self.sessions_handled += 1

    def _shutdown(self):
        if self._worker is not None:
            self._worker.shutdown(wait=True, timeout=5.0)
        logger.info("Server stopped")
