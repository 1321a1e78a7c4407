"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing, leaf first:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Creates the listening socket (SO_REUSEADDR, backlog 1)           │
    │  • Runs the accept() loop, one session at a time                    │
    │  • Handles SIGTERM/SIGINT between sessions                          │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ One Connection per client
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Wraps the accepted socket                                        │
    │  • write() / write_line() / idempotent close()                      │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Owns
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                         CHUNK READER                                 │
    │  • read_chunk(n): select() with the read timeout, then recv_into()  │
    │  • Buffer reallocated only when n changes                           │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .chunk_reader import ChunkReader
from .connection import Connection, ConnectionState
from .socket_server import SocketServer, ServerStartupError

__all__ = [
    "ChunkReader",         # Timeout-bounded chunked reads
    "Connection",          # Wrapper for client socket - handles I/O
    "ConnectionState",     # Enum for connection lifecycle states
    "SocketServer",        # Listening socket and serial accept loop
    "ServerStartupError",  # Fatal socket/bind/listen failure
]
