from pydantic import AfterValidator, BaseModel, ConfigDict, Field, RootModel, model_validator
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional, List, Dict, Union, NamedTuple
import uuid


def utcnow() -> datetime:
    """Timezone-aware timestamp used for every createdAt/updatedAt/addedAt."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Status(Enum):
    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"


class SubtaskStatus(Enum):
    TODO = "todo"
    DONE = "done"


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Sort key, lower sorts first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}
UNSET_PRIORITY_RANK = 3


def priority_rank(priority: Optional[Priority]) -> int:
    return priority.rank if priority is not None else UNSET_PRIORITY_RANK


class ItemKind(Enum):
    EPIC = "epic"
    TASK = "task"


class EpicTMModel(BaseModel):
    """Base for all stored entities: camelCase on disk, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    def to_json_dict(self) -> dict:
        """Serialize to the on-disk representation."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


INDEX_FILE_NAME = "epics.json"


def _validate_identifier(v: str) -> str:
    if not v or not v.strip():
        raise ValueError("Identifier must not be empty")
    # epic IDs name folders next to the index and its hidden temp files
    if "/" in v or "\\" in v or v.startswith(".") or v == INDEX_FILE_NAME:
        raise ValueError(f"Invalid identifier: {v!r}")
    return v


Identifier = Annotated[str, AfterValidator(_validate_identifier)]


def _check_unique(values: List[str], what: str):
    seen = set()
    for value in values:
        if value in seen:
            raise ValueError(f"Duplicate {what}: {value}")
        seen.add(value)


class AssociatedFile(EpicTMModel):
    file_path: str = Field(min_length=1, description="Path of the file, unique within its owner's file list")
    description: Optional[str] = Field(default=None, description="Why the file matters for the item")
    added_at: datetime = Field(default_factory=utcnow, description="When the file was attached")

    @classmethod
    def new(cls, file_path: str, description: Optional[str] = None) -> 'AssociatedFile':
        return cls(file_path=file_path, description=description, added_at=utcnow())


class Subtask(EpicTMModel):
    id: Identifier = Field(description="Opaque unique identifier of the subtask")
    description: str = Field(description="What needs to be done")
    status: SubtaskStatus = Field(default=SubtaskStatus.TODO, description="Subtasks are either todo or done")
    created_at: datetime = Field(default_factory=utcnow, description="When the subtask was created")

    @classmethod
    def new(cls, description: str) -> 'Subtask':
        return cls(id=new_id(), description=description, created_at=utcnow())


class WorkItem(EpicTMModel):
    """Fields shared by Epics and Tasks."""

    id: Identifier = Field(description="Opaque unique identifier")
    description: str = Field(description="What the item is about; the first line is its title")
    status: Status = Field(default=Status.TODO, description="Current status")
    priority: Optional[Priority] = Field(default=None, description="Optional priority")
    complexity: Optional[int] = Field(default=None, ge=1, le=10, description="Complexity score from 1 to 10")
    created_at: datetime = Field(default_factory=utcnow, description="When the item was created; never changes")
    updated_at: datetime = Field(default_factory=utcnow, description="Refreshed on every mutation")
    files: List[AssociatedFile] = Field(default_factory=list, description="Files associated with the item")
    dependencies: Optional[List[str]] = Field(default=None, description="IDs this item depends on")
    test_strategy: Optional[str] = Field(default=None, description="How the item will be verified")
    implementation_plan: Optional[str] = Field(default=None, description="Detailed implementation notes")

    @model_validator(mode='after')
    def validate_item(self):
        if self.updated_at < self.created_at:
            raise ValueError("updatedAt must not be before createdAt")
        _check_unique([f.file_path for f in self.files], "file path")
        return self

    @property
    def title(self) -> str:
        return self.description.split("\n")[0]

    def touch(self):
        """Refresh updated_at after a mutation."""
        self.updated_at = utcnow()

    def find_file(self, file_path: str) -> Optional[AssociatedFile]:
        return next((f for f in self.files if f.file_path == file_path), None)

    def depends_on(self, item_id: str) -> bool:
        return item_id in (self.dependencies or [])


class Task(WorkItem):
    subtasks: List[Subtask] = Field(default_factory=list, description="Ordered list of subtasks")

    @model_validator(mode='after')
    def validate_subtasks(self):
        _check_unique([s.id for s in self.subtasks], "subtask id")
        return self

    @classmethod
    def new(cls, description: str, **fields) -> 'Task':
        now = utcnow()
        return cls(id=new_id(), description=description, created_at=now, updated_at=now, **fields)

    def find_subtask(self, subtask_id: str) -> Optional[Subtask]:
        """Find a subtask by ID."""
        return next((s for s in self.subtasks if s.id == subtask_id), None)


class Epic(WorkItem):
    tasks: List[Task] = Field(default_factory=list, description="Ordered list of tasks, insertion order")

    @model_validator(mode='after')
    def validate_tasks(self):
        _check_unique([t.id for t in self.tasks], "task id")
        return self

    @classmethod
    def new(cls, description: str, **fields) -> 'Epic':
        now = utcnow()
        return cls(id=new_id(), description=description, created_at=now, updated_at=now, **fields)

    def find_task(self, task_id: str) -> Optional[Task]:
        """Find a task by ID."""
        return next((t for t in self.tasks if t.id == task_id), None)

    def task_index(self, task_id: str) -> int:
        """Position of a task in the list, -1 when absent."""
        return next((i for i, t in enumerate(self.tasks) if t.id == task_id), -1)


class EpicIndex(RootModel[Dict[str, Epic]]):
    """The aggregate index document: Epic ID -> full Epic."""


class TaskRef(NamedTuple):
    epic: Epic
    task: Task


class SubtaskRef(NamedTuple):
    epic: Epic
    task: Task
    subtask: Subtask


class ItemRef(NamedTuple):
    """Either an Epic or a Task within its Epic."""

    kind: ItemKind
    epic: Epic
    task: Optional[Task] = None

    @classmethod
    def of_epic(cls, epic: Epic) -> 'ItemRef':
        return cls(ItemKind.EPIC, epic)

    @classmethod
    def of_task(cls, epic: Epic, task: Task) -> 'ItemRef':
        return cls(ItemKind.TASK, epic, task)

    @property
    def item(self) -> Union[Epic, Task]:
        if self.kind is ItemKind.TASK:
            return self.task
        return self.epic

    @property
    def id(self) -> str:
        return self.item.id
