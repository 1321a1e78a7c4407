"""
=============================================================================
EXTERNAL TRIGGER
=============================================================================

Runs the external adaptation pipeline on a completed upload and classifies
how it ended. The pipeline is an opaque executable: it receives the
uploaded file's path as its only argument and reports through its exit
status.

=============================================================================
EXIT STATUS CLASSIFICATION
=============================================================================

    ┌──────────────┬──────────────┬───────────────────────────────────────┐
    │ exit status  │ outcome      │ log                                   │
    ├──────────────┼──────────────┼───────────────────────────────────────┤
    │ 0            │ SUCCESS      │ info                                  │
    │ 127          │ NOT_FOUND    │ error (command not found)             │
    │ other        │ FAILED       │ error, with the status                │
    │ (killed)     │ TIMED_OUT    │ error, only with a trigger_timeout    │
    └──────────────┴──────────────┴───────────────────────────────────────┘

The command is executed directly, not through a shell. A missing or
non-executable command is reported with the status a shell would give it
(127 / 126), so the classification is the same either way.

=============================================================================
"""

import logging
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional


logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127
COMMAND_NOT_EXECUTABLE = 126


class TriggerOutcome(Enum):
    """Classified result of one trigger run."""
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class TriggerResult:
    """
    Result of running the trigger command on one file.

    Attributes:
        path: File the command was run on.
        outcome: Classified outcome.
        returncode: Exit status, None if the process was killed on timeout.
        duration: Wall-clock seconds spent waiting for the command.
    """
    path: str
    outcome: TriggerOutcome
    returncode: Optional[int]
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.outcome is TriggerOutcome.SUCCESS


def classify(returncode: int) -> TriggerOutcome:
    """Map an exit status to a TriggerOutcome."""
    if returncode == 0:
        return TriggerOutcome.SUCCESS
    if returncode == COMMAND_NOT_FOUND:
        return TriggerOutcome.NOT_FOUND
    return TriggerOutcome.FAILED


class ProcessTrigger:
    """
    Synchronously invokes an external command with a file path argument.

    Usage:
        trigger = ProcessTrigger("/opt/adapt/run-adaptation.sh")
        result = trigger.run("/data/uploads/clip.dat")
        if not result.ok:
            ...
    """

    def __init__(self, command: str, timeout: Optional[float] = None):
        """
        Args:
            command: Path of the executable to run.
            timeout: Seconds before the child is killed. None waits forever.
        """
        self.command = command
        self.timeout = timeout

    def run(self, path: str) -> TriggerResult:
        """
        Run the command on path and block until it exits.

        Never raises for a failing command; every failure is classified
        and logged.
        """
        logger.info(f"Running trigger: {self.command} {path}")
        start_time = time.time()

        try:
            completed = subprocess.run([self.command, path], timeout=self.timeout)
            returncode = completed.returncode
        except FileNotFoundError:
            returncode = COMMAND_NOT_FOUND
        except OSError as e:
            # PermissionError, ENOEXEC and friends: found but not runnable
            logger.debug(f"Cannot execute {self.command}: {e}")
            returncode = COMMAND_NOT_EXECUTABLE
        except subprocess.TimeoutExpired:
            duration = time.time() - start_time
            logger.error(f"Trigger timed out after {duration:.1f}s on {path}; process killed")
            return TriggerResult(path, TriggerOutcome.TIMED_OUT, None, duration)

        duration = time.time() - start_time
        outcome = classify(returncode)

        if outcome is TriggerOutcome.SUCCESS:
            logger.info(f"Adaptation finished for {path} ({duration:.1f}s)")
        elif outcome is TriggerOutcome.NOT_FOUND:
            logger.error(f"Trigger command not found: {self.command}")
        else:
            logger.error(f"Adaptation failed for {path} with exit status {returncode}")

        return TriggerResult(path, outcome, returncode, duration)
