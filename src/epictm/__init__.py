"""
epictm - a file-backed Epic/Task/Subtask store for driving planning agents.

Work is organised in a two level hierarchy:
Epic → Task → Subtask
"""

from .version import VERSION
from .recovery import (
    ErrorKind,
    EpicTMError,
    NotConfiguredError,
    FileOperationError,
    CorruptionError,
    InvalidItemError,
)
from .models import (
    Status,
    SubtaskStatus,
    Priority,
    ItemKind,
    AssociatedFile,
    Subtask,
    Task,
    Epic,
    ItemRef,
    TaskRef,
    SubtaskRef,
)
from .store import EpicStore
from .completion import Completion, calculate_completion
from .resolver import is_ready, find_next_task, suggest_next, find_dependents
from .data import EpicRepository, LoadReport
from .service import EpicService, OperationResult

__version__ = VERSION

__all__ = [
    "VERSION",
    "ErrorKind",
    "EpicTMError",
    "NotConfiguredError",
    "FileOperationError",
    "CorruptionError",
    "InvalidItemError",
    "Status",
    "SubtaskStatus",
    "Priority",
    "ItemKind",
    "AssociatedFile",
    "Subtask",
    "Task",
    "Epic",
    "ItemRef",
    "TaskRef",
    "SubtaskRef",
    "EpicStore",
    "Completion",
    "calculate_completion",
    "is_ready",
    "find_next_task",
    "suggest_next",
    "find_dependents",
    "EpicRepository",
    "LoadReport",
    "EpicService",
    "OperationResult",
]
