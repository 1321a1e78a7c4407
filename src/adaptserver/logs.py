"""
=============================================================================
SESSION LOGGING
=============================================================================

One structured log entry per session, in the spirit of an access log: who
connected, what was received, how the session ended and how long it took.

=============================================================================
LOG FORMATS
=============================================================================

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 10.0.0.7 [18/Oct/2026:10:55:36 +0000] transfer "clip.dat" 12/12     │
    │ done success 5.02ms                                                 │
    └─────────────────────────────────────────────────────────────────────┘

    JSON (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"session_id": "a1b2c3d4", "variant": "transfer",                   │
    │  "client_ip": "10.0.0.7", "file_name": "clip.dat",                  │
    │  "bytes_written": 12, "declared_length": 12, "state": "done",       │
    │  "trigger": "success", "duration_ms": 5.02, ...}                    │
    └─────────────────────────────────────────────────────────────────────┘

The entries go to the "adaptserver.sessions" logger so they can be routed
separately from the diagnostic logs:

    logging.getLogger("adaptserver.sessions").addHandler(file_handler)

=============================================================================
"""

import json
import logging
import time
from dataclasses import dataclass, asdict
from typing import Optional


logger = logging.getLogger("adaptserver.sessions")


@dataclass
class SessionLog:
    """
    Structured log entry for one session.

    Fields:
        session_id:      Connection id, correlates with diagnostic logs.
        variant:         "transfer" or "listing".
        client_ip:       Peer address.
        file_name:       Destination file name (transfer), or the command.
        bytes_written:   Payload bytes persisted.
        declared_length: payload_length from the header, if one was read.
        state:           Final session state.
        trigger:         Trigger outcome, if the trigger ran.
        duration_ms:     Session wall-clock time.
        timestamp:       When the session ended.
    """

    session_id: str
    variant: str
    client_ip: str
    file_name: Optional[str] = None
    bytes_written: int = 0
    declared_length: Optional[int] = None
    state: str = ""
    trigger: Optional[str] = None
    duration_ms: float = 0.0
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = time.strftime("%d/%b/%Y:%H:%M:%S %z")

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        declared = "-" if self.declared_length is None else str(self.declared_length)
        return (
            f'{self.client_ip} [{self.timestamp}] {self.variant} '
            f'"{self.file_name or "-"}" {self.bytes_written}/{declared} '
            f'{self.state} {self.trigger or "-"} {self.duration_ms:.2f}ms'
        )


def emit(entry: SessionLog, log_format: str = "text", level: int = logging.INFO):
    """Write a session entry in the configured format."""
    if log_format == "json":
        logger.log(level, json.dumps(entry.to_dict()))
    else:
        logger.log(level, entry.to_text())
