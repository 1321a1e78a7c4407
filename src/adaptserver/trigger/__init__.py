"""
External pipeline trigger.

ProcessTrigger runs the command and classifies its exit status;
TriggerWorker runs it off the session's thread and returns a Future.
"""

from .process import ProcessTrigger, TriggerOutcome, TriggerResult, classify
from .worker import TriggerWorker

__all__ = [
    "ProcessTrigger",
    "TriggerOutcome",
    "TriggerResult",
    "TriggerWorker",
    "classify",
]
