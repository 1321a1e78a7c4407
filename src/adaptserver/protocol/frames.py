"""
=============================================================================
WIRE FRAMES
=============================================================================

Everything the client and the server exchange on the wire is defined here:
the fixed-size transfer header, the unit widths used when counting chunks,
and the literal text tokens of both protocol variants.

=============================================================================
TRANSFER VARIANT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  HEADER FRAME (104 bytes, network byte order)                       │
    │  ─────────────────────────────────────────────────────────────────  │
    │  payload_length   int32        4 bytes                              │
    │  file_name        char[100]    NUL-padded / truncated               │
    ├─────────────────────────────────────────────────────────────────────┤
    │  PAYLOAD                                                            │
    │  ─────────────────────────────────────────────────────────────────  │
    │  raw bytes, read in fixed-size chunks until the peer closes the     │
    │  connection or a read times out                                     │
    └─────────────────────────────────────────────────────────────────────┘

    server → client:  "start adaptation...\\n"   (once, before the trigger)

The payload is NOT length-delimited. payload_length travels on the wire
but is informational only: the stream ends at EOF or timeout.

=============================================================================
LISTING VARIANT
=============================================================================

    client → server:  fixed-size command buffer, "list" + NUL padding
    server → client:  "model_a#model_b#\\n"

=============================================================================
"""

import os
import struct
from dataclasses import dataclass
from enum import Enum


# ─────────────────────────────────────────────────────────────────────────
# HEADER LAYOUT
# ─────────────────────────────────────────────────────────────────────────

FILE_NAME_SIZE = 100
HEADER_FORMAT = f"!i{FILE_NAME_SIZE}s"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 104

# ─────────────────────────────────────────────────────────────────────────
# PROTOCOL TOKENS
# ─────────────────────────────────────────────────────────────────────────

ACK_LINE = "start adaptation..."
LINE_TERMINATOR = "\n"
LIST_COMMAND = b"list"
LIST_SEPARATOR = "#"

DEFAULT_CHUNK_SIZE = 2048
DEFAULT_COMMAND_SIZE = 100
DEFAULT_HEADERLESS_FILE_NAME = "temp.zip"


class FrameError(ValueError):
    """Raised when a frame cannot be decoded from the bytes received."""


class ChunkUnit(Enum):
    """
    Unit in which chunk lengths are counted.

    The byte-oriented variant counts single bytes; the audio variant
    counts 16-bit PCM samples, so a chunk of 2048 units is 4096 bytes.
    """
    BYTE = "byte"
    SAMPLE = "sample"

    @property
    def width(self) -> int:
        """Size of one unit in bytes."""
        return 2 if self is ChunkUnit.SAMPLE else 1


@dataclass(frozen=True)
class TransferHeader:
    """
    First frame of a transfer session.

    Attributes:
        payload_length: Length the client announces for the payload.
                        Carried for information; never enforced.
        file_name: Destination file name, used verbatim.
    """

    payload_length: int
    file_name: str

    @classmethod
    def parse(cls, data: bytes) -> "TransferHeader":
        """
        Decode a header from the first HEADER_SIZE bytes of data.

        The file name field ends at the first NUL byte. It is decoded with
        the filesystem encoding, so undecodable bytes survive as surrogates
        and the file is created under exactly the bytes the client sent.

        Raises:
            FrameError: If fewer than HEADER_SIZE bytes are given.
        """
        if len(data) < HEADER_SIZE:
            raise FrameError(
                f"Short header: got {len(data)} of {HEADER_SIZE} bytes"
            )

        payload_length, raw_name = struct.unpack(HEADER_FORMAT, bytes(data[:HEADER_SIZE]))
        file_name = os.fsdecode(raw_name.split(b"\0", 1)[0])
        return cls(payload_length=payload_length, file_name=file_name)

    def pack(self) -> bytes:
        """Encode the header; struct pads or truncates the name to 100 bytes."""
        return struct.pack(HEADER_FORMAT, self.payload_length, os.fsencode(self.file_name))


def parse_command(data: bytes) -> bytes:
    """Return the command token of a listing request (bytes before the first NUL)."""
    return bytes(data).split(b"\0", 1)[0]


def format_listing(names) -> str:
    """Join entry names the way the listing reply expects: 'a#b#'."""
    return "".join(f"{name}{LIST_SEPARATOR}" for name in names)
