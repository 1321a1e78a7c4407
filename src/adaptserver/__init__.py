"""
=============================================================================
ADAPTSERVER - TCP Upload Service for Acoustic Model Adaptation
=============================================================================

A small, strictly sequential TCP service. A client uploads a data artifact
(audio or an opaque file) over a raw socket; the server stores it and runs
an external adaptation job on it. A second variant lists the models that
are available.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         TWO VARIANTS                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   TRANSFER (port 5051)                                              │
    │      - 104-byte header: payload length + file name                  │
    │      - payload streamed in 2048-unit chunks until EOF / timeout     │
    │      - "start adaptation..." sent, then the trigger command runs    │
    │                                                                      │
    │   LISTING (port 5053)                                               │
    │      - "list" command                                               │
    │      - reply: model names joined by '#'                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    adaptserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m adaptserver)
    ├── server.py            # AdaptationServer orchestrator
    ├── config.py            # ServerConfig dataclass, variants
    ├── logs.py              # Per-session structured log entries
    ├── core/                # Networking
    │   ├── socket_server.py # Listening socket, serial accept loop
    │   ├── connection.py    # Connection wrapper
    │   └── chunk_reader.py  # Timeout-bounded chunk reads
    ├── protocol/            # Wire protocol
    │   ├── frames.py        # Header codec and tokens
    │   ├── transfer.py      # Upload session state machine
    │   └── listing.py       # Listing session
    ├── storage/
    │   └── file_sink.py     # Payload persistence
    └── trigger/
        ├── process.py       # External command + exit classification
        └── worker.py        # Background runner returning Futures

=============================================================================
QUICK START
=============================================================================

    from adaptserver import AdaptationServer, ServerConfig

    config = ServerConfig.for_transfer("/data/uploads", "/opt/adapt/run.sh")
    AdaptationServer(config).run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig, ServerVariant, Framing
from .server import AdaptationServer

__all__ = ["AdaptationServer", "ServerConfig", "ServerVariant", "Framing", "__version__"]
