"""
=============================================================================
TRIGGER WORKER
=============================================================================

Runs trigger commands on a background thread and hands each result back
through a Future.

=============================================================================
WHY A WORKER FOR A BLOCKING CALL?
=============================================================================

A session still waits for the trigger to finish before it returns, so the
observable behaviour is unchanged: one blocking trigger per completed
transfer. Putting the call behind a Future means the wait can be bounded
(future.result(timeout)) without touching the protocol code.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Worker Loop                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Wait for task from queue (blocking, idle_timeout slices)       │
    │          │                                                           │
    │          ▼                                                           │
    │   2. Poison pill (None)? ──yes──► exit loop                          │
    │          │                                                           │
    │          ▼                                                           │
    │   3. future.set_running_or_notify_cancel()                          │
    │          │                                                           │
    │          ├── Cancelled → skip                                        │
    │          │                                                           │
    │          └── Run trigger, set_result() / set_exception()            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import logging
import queue
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .process import ProcessTrigger, TriggerResult


logger = logging.getLogger(__name__)


class WorkerState(Enum):
    """Worker thread states, for monitoring."""
    IDLE = "idle"        # Waiting for a task
    BUSY = "busy"        # Running a trigger
    STOPPED = "stopped"  # Thread exited


@dataclass
class TriggerTask:
    """
    One pending trigger run.

    Attributes:
        path: File to pass to the trigger command.
        future: Resolved with the TriggerResult.
        submitted_at: Time the task was queued.
    """
    path: str
    future: Future = field(default_factory=Future)
    submitted_at: float = field(default_factory=time.time)


class TriggerWorker(threading.Thread):
    """
    Background thread that executes trigger tasks one at a time.

    Usage:
        worker = TriggerWorker(ProcessTrigger("/opt/adapt/run.sh"))
        worker.start()
        result = worker.submit("/data/clip.dat").result()
        worker.shutdown()
    """

    def __init__(self, trigger: ProcessTrigger, idle_timeout: float = 1.0):
        super().__init__(name="TriggerWorker", daemon=True)

        self.trigger = trigger
        self.idle_timeout = idle_timeout

        self.state = WorkerState.IDLE
        self._tasks: "queue.Queue[Optional[TriggerTask]]" = queue.Queue()
        self._shutdown = threading.Event()

        self.tasks_completed = 0
        self.tasks_failed = 0

    def submit(self, path: str) -> Future:
        """
        Queue a trigger run for path.

        Returns:
            Future resolving to a TriggerResult.

        Raises:
            RuntimeError: If the worker has been shut down.
        """
        if self._shutdown.is_set():
            raise RuntimeError("Trigger worker is shut down")

        task = TriggerTask(path)
        self._tasks.put(task)
        return task.future

    def run(self):
        logger.debug("Trigger worker started")

        while not self._shutdown.is_set():
            try:
                task = self._tasks.get(timeout=self.idle_timeout)
            except queue.Empty:
                continue

            try:
                if task is None:
                    break
                self._execute(task)
            finally:
                self._tasks.task_done()

        self.state = WorkerState.STOPPED
        logger.debug("Trigger worker stopped")

    def _execute(self, task: TriggerTask):
        if not task.future.set_running_or_notify_cancel():
            return

        self.state = WorkerState.BUSY
        logger.debug(f"Trigger for {task.path} waited {time.time() - task.submitted_at:.3f}s in queue")
        try:
            result: TriggerResult = self.trigger.run(task.path)
        except Exception as e:
            logger.exception(f"Trigger raised on {task.path}: {e}")
            self.tasks_failed += 1
            task.future.set_exception(e)
        else:
            if result.ok:
                self.tasks_completed += 1
            else:
                self.tasks_failed += 1
            task.future.set_result(result)
        finally:
            self.state = WorkerState.IDLE

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """Stop after the current task; pending tasks are cancelled."""
        self._shutdown.set()

        while True:
            try:
                task = self._tasks.get_nowait()
            except queue.Empty:
                break
            if task is not None:
                task.future.cancel()
            self._tasks.task_done()

        self._tasks.put(None)  # Poison pill wakes an idle worker

        if wait and self.is_alive():
            self.join(timeout)
