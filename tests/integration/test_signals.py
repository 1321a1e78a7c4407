"""
Integration tests for stopping the server process with signals.

The server runs as `python -m adaptserver` in a child process so the real
signal handlers are installed on its main thread.
"""

import os
import signal
import socket
import subprocess
import sys
import threading
import time
from pathlib import Path

import pytest

from adaptserver.__main__ import EXIT_INTERRUPTED


SRC_DIR = Path(__file__).parent.parent.parent / "src"


class ServerProcess:
    """`python -m adaptserver ...` child with its log lines collected."""

    def __init__(self, *args: str):
        env = dict(os.environ)
        env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))
        self.proc = subprocess.Popen(
            [sys.executable, "-m", "adaptserver", *args],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            env=env,
            universal_newlines=True,
        )
        self.lines = []
        self._reader = threading.Thread(target=self._collect, daemon=True)
        self._reader.start()

    def _collect(self):
        for line in self.proc.stderr:
            self.lines.append(line)

    def wait_for_log(self, text: str, timeout: float = 10.0):
        deadline = time.time() + timeout
        while time.time() < deadline:
            if any(text in line for line in self.lines):
                return
            if self.proc.poll() is not None:
                break
            time.sleep(0.05)
        raise AssertionError(f"{text!r} not logged; got:\n{''.join(self.lines)}")

    def is_alive(self, wait: float = 0.0) -> bool:
        try:
            self.proc.wait(timeout=wait)
        except subprocess.TimeoutExpired:
            return True
        return False

    def stop(self):
        if self.proc.poll() is None:
            self.proc.kill()
            self.proc.wait()


@pytest.fixture
def spawn():
    started = []

    def factory(*args: str) -> ServerProcess:
        proc = ServerProcess(*args)
        started.append(proc)
        return proc

    yield factory

    for proc in started:
        proc.stop()


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
class TestSignals:
    """Tests for SIGINT/SIGTERM handling."""

    def test_sigint_when_idle_exits_cleanly(self, spawn, model_dir, free_port):
        """Test that a signal between sessions ends the loop with status 0."""
        server = spawn("list", "--host", "127.0.0.1", "--port-num", str(free_port), str(model_dir))
        server.wait_for_log("Listening on")

        # A finished session proves the accept loop (and its handlers) is up
        with socket.create_connection(("127.0.0.1", free_port), timeout=5) as client:
            client.sendall(b"list" + b"\0" * 96)
            assert client.recv(64) == b"\n"

        server.wait_for_log("Accepted connection")
        time.sleep(0.5)  # let the loop return to accept()
        server.proc.send_signal(signal.SIGINT)

        assert server.proc.wait(timeout=10) == 0

    @pytest.mark.parametrize("signum", [signal.SIGINT, signal.SIGTERM])
    def test_signal_interrupts_stalled_session(self, spawn, dest_dir, free_port, signum):
        """Test that a silent client with no read timeout cannot keep the server alive."""
        server = spawn(
            "transfer", "--host", "127.0.0.1", "--port-num", str(free_port),
            "--read-timeout", "-1", str(dest_dir), "/bin/true",
        )
        server.wait_for_log("Listening on")

        with socket.create_connection(("127.0.0.1", free_port), timeout=5):
            server.wait_for_log("Accepted connection")
            time.sleep(0.3)

            server.proc.send_signal(signum)

            assert not server.is_alive(wait=10)
            assert server.proc.returncode == EXIT_INTERRUPTED

        assert os.listdir(dest_dir) == []

    def test_signal_interrupts_hung_trigger(self, spawn, dest_dir, free_port, make_script, make_header):
        """Test that a trigger that never exits does not block shutdown."""
        trigger = make_script("sleep 60")
        server = spawn(
            "transfer", "--host", "127.0.0.1", "--port-num", str(free_port),
            "--read-timeout", "1", str(dest_dir), trigger,
        )
        server.wait_for_log("Listening on")

        with socket.create_connection(("127.0.0.1", free_port), timeout=5) as client:
            client.sendall(make_header("clip.dat", 2) + b"ok")
            client.shutdown(socket.SHUT_WR)
            assert client.recv(64) == b"start adaptation...\n"

            server.wait_for_log("Running trigger")
            server.proc.send_signal(signal.SIGINT)

            assert not server.is_alive(wait=15)
            assert server.proc.returncode == EXIT_INTERRUPTED
