"""Dispatcher, executor and the clients they depend on."""

from .dispatcher import DispatchResult, Dispatcher
from .execution_api import ExecutionApiClient
from .executor import MessageOutcome, ScheduleExecutor
from .queue import QueueMessage, SQSQueue
from .schedule_store import ScheduleStore

__all__ = [
    "DispatchResult",
    "Dispatcher",
    "ExecutionApiClient",
    "MessageOutcome",
    "QueueMessage",
    "SQSQueue",
    "ScheduleExecutor",
    "ScheduleStore",
]
