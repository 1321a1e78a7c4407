"""
pytest configuration and fixtures.
"""

import socket
import stat
import threading
import time
from concurrent.futures import Future
from typing import Generator, List

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from adaptserver import AdaptationServer, ServerConfig
from adaptserver.core import Connection
from adaptserver.protocol.frames import TransferHeader
from adaptserver.trigger import TriggerOutcome, TriggerResult


@pytest.fixture
def socket_pair() -> Generator[tuple, None, None]:
    """Connected (server_side, client_side) stream sockets."""
    server_side, client_side = socket.socketpair()
    yield server_side, client_side
    for s in (server_side, client_side):
        try:
            s.close()
        except OSError:
            pass


@pytest.fixture
def make_connection(socket_pair):
    """Build a Connection around the server side of socket_pair."""
    server_side, _ = socket_pair

    def factory(read_timeout=0.5, unit_width=1) -> Connection:
        return Connection(
            socket=server_side,
            address=("127.0.0.1", 40000),
            read_timeout=read_timeout,
            unit_width=unit_width,
        )

    return factory


@pytest.fixture
def make_script(tmp_path: Path):
    """Write an executable shell script and return its path."""

    def factory(body: str, name: str = "trigger.sh") -> str:
        path = tmp_path / name
        path.write_text("#!/bin/sh\n" + body + "\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return factory


class FakeTrigger:
    """
    Records trigger submissions instead of running a process.

    `events` is shared with the test so the order of "ack received" and
    "trigger ran" can be checked.
    """

    def __init__(self, events: List[str] = None, outcome=TriggerOutcome.SUCCESS, client=None):
        self.calls: List[str] = []
        self.events = events if events is not None else []
        self.outcome = outcome
        self.client = client
        self.ack_seen_before_trigger = None

    def submit(self, path: str) -> Future:
        if self.client is not None:
            # The ack must already be readable when the trigger starts
            self.client.settimeout(1.0)
            self.ack_seen_before_trigger = self.client.recv(64)
        self.calls.append(path)
        self.events.append("trigger")
        future = Future()
        future.set_result(TriggerResult(path, self.outcome, 0 if self.outcome is TriggerOutcome.SUCCESS else 1))
        return future


@pytest.fixture
def make_fake_trigger():
    """Build a FakeTrigger; see its docstring for the arguments."""
    return FakeTrigger


@pytest.fixture
def make_header():
    """Encode a transfer header."""

    def factory(file_name: str, payload_length: int) -> bytes:
        return TransferHeader(payload_length=payload_length, file_name=file_name).pack()

    return factory


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class RunningServer:
    """Test server helper that runs in a background thread."""

    def __init__(self, server: AdaptationServer):
        self.server = server
        self._thread: threading.Thread = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Bind, then run the accept loop in a background thread."""
        self.server.listen()
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        for _ in range(50):  # 5 seconds max
            if self.server.is_running:
                return
            time.sleep(0.1)

        raise RuntimeError("Server failed to start")

    def connect(self) -> socket.socket:
        return socket.create_connection(("127.0.0.1", self.port), timeout=5.0)

    def wait_for_sessions(self, count: int, timeout: float = 5.0):
        deadline = time.time() + timeout
        while self.server.sessions_handled < count:
            if time.time() > deadline:
                raise AssertionError(
                    f"Only {self.server.sessions_handled} of {count} sessions finished"
                )
            time.sleep(0.02)

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def start_server():
    """Start AdaptationServer instances; all are stopped after the test."""
    running: List[RunningServer] = []

    def factory(config: ServerConfig, **kwargs) -> RunningServer:
        srv = RunningServer(AdaptationServer(config, **kwargs))
        srv.start()
        running.append(srv)
        return srv

    yield factory

    for srv in running:
        srv.stop()


@pytest.fixture
def dest_dir(tmp_path: Path) -> Path:
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def model_dir(tmp_path: Path) -> Path:
    path = tmp_path / "models"
    path.mkdir()
    return path


@pytest.fixture
def recv_all():
    """Read from a socket until the peer closes."""

    def read(sock: socket.socket) -> bytes:
        chunks = []
        while True:
            data = sock.recv(4096)
            if not data:
                return b"".join(chunks)
            chunks.append(data)

    return read
