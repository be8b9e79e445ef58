"""
Execution
=========
Event bus and batch executor.
"""

from .events import Event, EventBus, EventHandler, EventType
from .executor import BatchExecutor, ExecutionOutcome

__all__ = [
    "Event",
    "EventBus",
    "EventHandler",
    "EventType",
    "BatchExecutor",
    "ExecutionOutcome",
]
