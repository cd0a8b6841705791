from .context import (
    TaskContext,
    get_default_context,
    get_default_failure_handler,
    log_failure,
    set_default_failure_handler,
)
from .pending import PendingElement
from .task import Absent, Deferred, Mapped, Outcome, Paired, Resolved, Task

__all__ = [
    "Absent",
    "Deferred",
    "Mapped",
    "Outcome",
    "Paired",
    "PendingElement",
    "Resolved",
    "Task",
    "TaskContext",
    "get_default_context",
    "get_default_failure_handler",
    "log_failure",
    "set_default_failure_handler",
]
