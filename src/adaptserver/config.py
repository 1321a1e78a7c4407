"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for both server variants.

=============================================================================
ONE CONFIG, TWO VARIANTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       PROTOCOL VARIANTS                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   TRANSFER  (default port 5051)                                     │
    │   └── header + payload upload, then the trigger command runs        │
    │   └── framing: HEADER (104-byte header) or HEADERLESS               │
    │   └── unit:    BYTE or SAMPLE (16-bit audio)                        │
    │                                                                      │
    │   LISTING   (default port 5053)                                     │
    │   └── "list" command, replies with model names joined by '#'        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The configuration is frozen: it is built once at startup and shared,
read-only, by every session of the process.

Priority (highest to lowest):

    1. Command-line arguments       python -m adaptserver transfer --port-num 6000 ...
    2. Environment variables        ADAPT_PORT=6000
    3. Default values (in this dataclass)

=============================================================================
"""

import os
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from .protocol.frames import (
    ChunkUnit,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_COMMAND_SIZE,
    DEFAULT_HEADERLESS_FILE_NAME,
)


TRANSFER_PORT = 5051
LISTING_PORT = 5053
DEFAULT_READ_TIMEOUT = 3.0


class ServerVariant(Enum):
    """Which protocol the server speaks on its port."""
    TRANSFER = "transfer"
    LISTING = "listing"

    @property
    def default_port(self) -> int:
        return LISTING_PORT if self is ServerVariant.LISTING else TRANSFER_PORT


class Framing(Enum):
    """How a transfer session starts."""
    HEADER = "header"          # 104-byte header names the destination file
    HEADERLESS = "headerless"  # payload starts immediately, fixed file name


def timeout_from_seconds(value) -> Optional[float]:
    """
    Convert a CLI/env timeout in seconds to a read timeout.

    A negative value means "block indefinitely" and maps to None.
    """
    if value is None:
        return None
    value = float(value)
    return None if value < 0 else value


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for an adaptation or model-listing server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, read_timeout

    PROTOCOL SETTINGS
    - variant, framing, unit, chunk_size, command_size

    TRANSFER SETTINGS
    - dest_dir, trigger_command, trigger_timeout, headerless_file_name

    LISTING SETTINGS
    - model_dir

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """Bind address. All interfaces by default."""

    port: int = TRANSFER_PORT
    """Listening port. 0 lets the OS pick one (tests)."""

    backlog: int = 1
    """
    Pending-connection queue depth.
    Sessions are strictly serial, so one queued client is enough.
    """

    read_timeout: Optional[float] = DEFAULT_READ_TIMEOUT
    """
    Seconds to wait for the client's data to appear before a chunk read
    gives up. None = block indefinitely.
    """

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    variant: ServerVariant = ServerVariant.TRANSFER
    framing: Framing = Framing.HEADER
    unit: ChunkUnit = ChunkUnit.BYTE

    chunk_size: int = DEFAULT_CHUNK_SIZE
    """Payload chunk size, in units."""

    command_size: int = DEFAULT_COMMAND_SIZE
    """Size of the listing command buffer, in bytes."""

    # ─────────────────────────────────────────────────────────────────────
    # TRANSFER SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    dest_dir: Optional[str] = None
    """Directory uploaded files are written to."""

    trigger_command: Optional[str] = None
    """Executable run with the uploaded file's path as its only argument."""

    trigger_timeout: Optional[float] = None
    """
    Bound on the trigger phase in seconds.
    None = wait for the external job however long it takes.
    """

    headerless_file_name: str = DEFAULT_HEADERLESS_FILE_NAME
    """Destination file name used when framing is HEADERLESS."""

    # ─────────────────────────────────────────────────────────────────────
    # LISTING SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    model_dir: Optional[str] = None
    """Directory whose entries the listing variant reports."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)."""

    log_format: str = "text"
    """Session log format: 'text' or 'json'."""

    @classmethod
    def for_transfer(cls, dest_dir: str, trigger_command: str, **overrides) -> "ServerConfig":
        """Configuration for the upload-and-adapt server (port 5051)."""
        overrides.setdefault("port", TRANSFER_PORT)
        return cls(
            variant=ServerVariant.TRANSFER,
            dest_dir=dest_dir,
            trigger_command=trigger_command,
            **overrides,
        )

    @classmethod
    def for_listing(cls, model_dir: str, **overrides) -> "ServerConfig":
        """Configuration for the model-listing server (port 5053)."""
        overrides.setdefault("port", LISTING_PORT)
        return cls(variant=ServerVariant.LISTING, model_dir=model_dir, **overrides)

    @classmethod
    def from_env(cls, variant: ServerVariant = ServerVariant.TRANSFER) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        ADAPT_HOST          Bind address (default: 0.0.0.0)
        ADAPT_PORT          Port (default: 5051 transfer, 5053 listing)
        ADAPT_READ_TIMEOUT  Read timeout in seconds, negative blocks (default: 3)
        ADAPT_DEST_DIR      Destination directory (transfer)
        ADAPT_TRIGGER       Trigger command (transfer)
        ADAPT_MODEL_DIR     Model directory (listing)
        ADAPT_LOG_LEVEL     Logging level (default: INFO)
        ADAPT_LOG_FORMAT    Session log format (default: text)

        =====================================================================
        """
        return cls(
            host=os.getenv("ADAPT_HOST", "0.0.0.0"),
            port=int(os.getenv("ADAPT_PORT", str(variant.default_port))),
            read_timeout=timeout_from_seconds(os.getenv("ADAPT_READ_TIMEOUT", str(DEFAULT_READ_TIMEOUT))),
            variant=variant,
            dest_dir=os.getenv("ADAPT_DEST_DIR"),
            trigger_command=os.getenv("ADAPT_TRIGGER"),
            model_dir=os.getenv("ADAPT_MODEL_DIR"),
            log_level=os.getenv("ADAPT_LOG_LEVEL", "INFO"),
            log_format=os.getenv("ADAPT_LOG_FORMAT", "text"),
        )

    def with_overrides(self, **changes) -> "ServerConfig":
        """Return a copy with some fields replaced."""
        return replace(self, **changes)

    def validate(self) -> None:
        """
        Validate configuration values.

        Fail fast at startup rather than in the middle of a session.

        Raises:
            ValueError: On the first invalid value found.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.read_timeout is not None and self.read_timeout < 0:
            raise ValueError("read_timeout must be >= 0 or None")

        if self.trigger_timeout is not None and self.trigger_timeout <= 0:
            raise ValueError("trigger_timeout must be > 0 or None")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

        if self.command_size < 1:
            raise ValueError("command_size must be >= 1")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {self.log_format!r}")

        if self.variant is ServerVariant.TRANSFER:
            if not self.dest_dir:
                raise ValueError("Transfer server needs a destination directory")
            if not self.trigger_command:
                raise ValueError("Transfer server needs a trigger command")
            if self.framing is Framing.HEADERLESS and not self.headerless_file_name:
                raise ValueError("Headerless framing needs a destination file name")
        elif not self.model_dir:
            raise ValueError("Listing server needs a model directory")
