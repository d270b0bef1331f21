"""
EpicService - the read/write surface used by the command line and other shells.

Every public method returns an ``OperationResult`` and never raises: store
misses become ``not_found`` results, persistence and validation problems are
converted from their exceptions. Nested changes follow read epic, mutate,
write epic back. With ``autosave`` the repository is saved after each
successful change.
"""
import functools
from typing import Any, Dict, Iterable, List, Optional, Union
from pydantic import BaseModel, Field
from epictm.recovery import DuplicateItemError, EpicTMError, ErrorKind, InvalidItemError
from epictm.models import (
    AssociatedFile, Epic, ItemKind, ItemRef, Status, Subtask, Task, WorkItem, utcnow,
)
from epictm.completion import calculate_completion
from epictm.data.core import EpicRepository
from epictm.data.validate import validate_index_document, verify_epics
from epictm import resolver
from epictm.logs import get_logger

log = get_logger("service")

ITEM_FIELDS = {'description', 'status', 'priority', 'complexity', 'test_strategy', 'implementation_plan'}
SUBTASK_FIELDS = {'description', 'status'}
BATCH_TASK_FIELDS = (ITEM_FIELDS - {'status'}) | {'dependencies'}
BATCH_TASK_ALIASES = {'testStrategy': 'test_strategy', 'implementationPlan': 'implementation_plan'}


class OperationResult(BaseModel):
    success: bool
    message: str
    kind: Optional[ErrorKind] = None
    data: Any = None
    warnings: List[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, message: str, data: Any = None, warnings: Optional[List[str]] = None) -> 'OperationResult':
        return cls(success=True, message=message, data=data, warnings=warnings or [])

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, data: Any = None) -> 'OperationResult':
        return cls(success=False, message=message, kind=kind, data=data)

    def __bool__(self) -> bool:
        return self.success


def _not_found(what: str, item_id: str) -> OperationResult:
    return OperationResult.fail(ErrorKind.NOT_FOUND, f"{what} {item_id} not found.")


def _guarded(method):
    """Turn exceptions raised below the service into failed results."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except EpicTMError as e:
            log.error(f"{method.__name__} failed: {e}")
            return OperationResult.fail(e.kind, str(e))
        except ValueError as e:
            # pydantic's ValidationError and enum lookups both land here
            log.info(f"{method.__name__} rejected invalid data: {e}")
            return OperationResult.fail(ErrorKind.VALIDATION_FAILURE, f"Invalid data: {e}")
    return wrapper


def _updates(fields: Dict[str, Any], allowed: Iterable[str]) -> Dict[str, Any]:
    unknown = set(fields) - set(allowed)
    if unknown:
        raise InvalidItemError(f"Unknown field(s): {', '.join(sorted(unknown))}")
    return {k: v for k, v in fields.items() if v is not None}


def _merged(item: BaseModel, updates: Dict[str, Any]):
    """Whole new entity built from ``item`` with ``updates`` applied."""
    data = item.model_dump()
    data.update(updates)
    return type(item).model_validate(data)


def _kind_name(ref: ItemRef) -> str:
    return "Task" if ref.kind is ItemKind.TASK else "Epic"


class EpicService:
    def __init__(self, repository: EpicRepository, require_file_association: bool = True, autosave: bool = True):
        self.repository = repository
        self.require_file_association = require_file_association
        self.autosave = autosave

    def _persist(self):
        if self.autosave:
            self.repository.save()

    def _write_epic(self, epic: Epic):
        epic.touch()
        if not self.repository.update(epic.id, epic):
            raise InvalidItemError(f"Failed to update Epic {epic.id} in store.")
        self._persist()

    def _done_guard(self, what: str, item: WorkItem, updates: Dict[str, Any]) -> Optional[OperationResult]:
        if 'status' not in updates or not self.require_file_association:
            return None
        if Status(updates['status']) is Status.DONE and item.status is not Status.DONE and not item.files:
            return OperationResult.fail(
                ErrorKind.VALIDATION_FAILURE,
                f"Cannot mark {what} {item.id} as done without associated files. Add files first.",
            )
        return None

    # --- Storage ---

    @_guarded
    def load(self) -> OperationResult:
        report = self.repository.load()
        if report.recovered:
            warning = f"Index {report.index_path} was unreadable and has been reset to empty."
            if report.quarantined is not None:
                warning += f" The old file was kept as {report.quarantined.name}."
            return OperationResult.ok("Storage loaded with recovery.", report, warnings=[warning])
        if report.bootstrapped:
            return OperationResult.ok(f"Initialized empty storage at {report.index_path}.", report)
        return OperationResult.ok(f"Loaded {report.epic_count} epic(s).", report)

    @_guarded
    def save(self) -> OperationResult:
        self.repository.save()
        return OperationResult.ok(f"Saved {len(self.repository.store)} epic(s).")

    @_guarded
    def storage_info(self) -> OperationResult:
        info = {
            'state': self.repository.state.value,
            'base_dir': str(self.repository.base_dir),
            'index_path': str(self.repository.index_path),
            'epic_count': len(self.repository.store),
        }
        return OperationResult.ok(f"Storage ({info['state']}) at {info['index_path']}", info)

    # --- Epics ---

    @_guarded
    def list_epics(self, status: Union[Status, str, None] = None) -> OperationResult:
        epics = self.repository.get_all()
        if status is not None:
            status = Status(status)
            epics = [e for e in epics if e.status is status]
        if not epics:
            suffix = f" with status '{status.value}'." if status is not None else "."
            return OperationResult.ok("No Epics found" + suffix, [])
        lines = [f"- {e.id[:8]} [{e.status.value}] ({len(e.tasks)} tasks): {e.title}" for e in epics]
        return OperationResult.ok("Epics:\n" + "\n".join(lines), epics)

    @_guarded
    def get_epic(self, epic_id: str) -> OperationResult:
        epic = self.repository.get_by_id(epic_id)
        if epic is None:
            return _not_found("Epic", epic_id)
        return OperationResult.ok(epic.title, epic)

    @_guarded
    def create_epic(self, description: str, **fields) -> OperationResult:
        epic = Epic.new(description, **_updates(fields, ITEM_FIELDS - {'status'}))
        if not self.repository.add(epic):
            raise DuplicateItemError(f"Epic {epic.id} already exists.")
        self._persist()
        return OperationResult.ok(f"Epic created with ID: {epic.id}", epic)

    @_guarded
    def batch_create_epic(self, description: str, tasks: Iterable[Dict[str, Any]] = (), **fields) -> OperationResult:
        """Create an epic together with its tasks and their subtasks in one step."""
        epic = Epic.new(description, **_updates(fields, ITEM_FIELDS - {'status'}))
        for task_data in tasks:
            epic.tasks.append(self._build_task(task_data))
        # list appends skip validation
        epic = Epic.model_validate(epic.model_dump())
        if not self.repository.add(epic):
            raise DuplicateItemError(f"Epic {epic.id} already exists.")
        self._persist()
        subtask_count = sum(len(t.subtasks) for t in epic.tasks)
        return OperationResult.ok(
            f"Epic created with ID: {epic.id}\n{len(epic.tasks)} tasks and {subtask_count} subtasks created.",
            epic,
        )

    @staticmethod
    def _build_task(task_data: Dict[str, Any]) -> Task:
        if not isinstance(task_data, dict):
            raise InvalidItemError(f"Task entries must be mappings, got {type(task_data).__name__}")
        data = dict(task_data)
        description = data.pop('description', None)
        if not description:
            raise InvalidItemError("Every task needs a description")

        subtask_data = data.pop('subtasks', None) or []
        if not isinstance(subtask_data, (list, tuple)):
            raise InvalidItemError(f"Subtasks of task '{description}' must be a list")
        subtasks = []
        for s in subtask_data:
            subtask_description = s.get('description') if isinstance(s, dict) else s
            if not subtask_description:
                raise InvalidItemError(f"Every subtask of task '{description}' needs a description")
            subtasks.append(Subtask.new(subtask_description))

        data = {BATCH_TASK_ALIASES.get(k, k): v for k, v in data.items()}
        return Task.new(description, subtasks=subtasks, **_updates(data, BATCH_TASK_FIELDS))

    @_guarded
    def update_epic(self, epic_id: str, **fields) -> OperationResult:
        updates = _updates(fields, ITEM_FIELDS)
        epic = self.repository.get_by_id(epic_id)
        if epic is None:
            return _not_found("Epic", epic_id)
        if not updates:
            return OperationResult.ok(f"No update parameters provided for Epic {epic_id}.", epic)
        refused = self._done_guard("Epic", epic, updates)
        if refused:
            return refused

        updates['updated_at'] = utcnow()
        updated = _merged(epic, updates)
        self.repository.update(epic_id, updated)
        self._persist()
        return OperationResult.ok(f"Epic {epic_id} updated.", updated)

    @_guarded
    def delete_epic(self, epic_id: str) -> OperationResult:
        if not self.repository.delete(epic_id):
            return _not_found("Epic", epic_id)
        self._persist()
        return OperationResult.ok(f"Epic {epic_id} deleted.")

    # --- Tasks ---

    @_guarded
    def get_task(self, task_id: str) -> OperationResult:
        ref = self.repository.find_task(task_id)
        if ref is None:
            return _not_found("Task", task_id)
        return OperationResult.ok(ref.task.title, ref)

    @_guarded
    def create_task(self, epic_id: str, description: str, dependencies: Optional[List[str]] = None,
                    **fields) -> OperationResult:
        epic = self.repository.get_by_id(epic_id)
        if epic is None:
            return _not_found("Epic", epic_id)
        task = Task.new(description, dependencies=dependencies, **_updates(fields, ITEM_FIELDS - {'status'}))
        if epic.find_task(task.id) is not None:
            raise DuplicateItemError(f"Task {task.id} already exists.")
        epic.tasks.append(task)
        self._write_epic(epic)
        return OperationResult.ok(f"Task created with ID: {task.id}", task)

    @_guarded
    def update_task(self, task_id: str, **fields) -> OperationResult:
        updates = _updates(fields, ITEM_FIELDS)
        ref = self.repository.find_task(task_id)
        if ref is None:
            return _not_found("Task", task_id)
        if not updates:
            return OperationResult.ok(f"No update parameters provided for Task {task_id}.", ref.task)
        refused = self._done_guard("Task", ref.task, updates)
        if refused:
            return refused

        updates['updated_at'] = utcnow()
        updated = _merged(ref.task, updates)
        ref.epic.tasks[ref.epic.task_index(task_id)] = updated
        self._write_epic(ref.epic)
        return OperationResult.ok(f"Task {task_id} updated.", updated)

    @_guarded
    def delete_task(self, task_id: str) -> OperationResult:
        ref = self.repository.find_task(task_id)
        if ref is None:
            return _not_found("Task", task_id)
        ref.epic.tasks = [t for t in ref.epic.tasks if t.id != task_id]
        self._write_epic(ref.epic)
        return OperationResult.ok(f"Task {task_id} deleted from Epic {ref.epic.id}.")

    # --- Subtasks ---

    @_guarded
    def get_subtask(self, subtask_id: str) -> OperationResult:
        ref = self.repository.find_subtask(subtask_id)
        if ref is None:
            return _not_found("Subtask", subtask_id)
        return OperationResult.ok(ref.subtask.description, ref)

    @_guarded
    def create_subtask(self, task_id: str, description: str) -> OperationResult:
        ref = self.repository.find_task(task_id)
        if ref is None:
            return _not_found("Task", task_id)
        subtask = Subtask.new(description)
        ref.task.subtasks.append(subtask)
        ref.task.touch()
        self._write_epic(ref.epic)
        return OperationResult.ok(f"Subtask created with ID: {subtask.id}", subtask)

    @_guarded
    def update_subtask(self, subtask_id: str, **fields) -> OperationResult:
        updates = _updates(fields, SUBTASK_FIELDS)
        ref = self.repository.find_subtask(subtask_id)
        if ref is None:
            return _not_found("Subtask", subtask_id)
        if not updates:
            return OperationResult.ok(f"No update parameters provided for Subtask {subtask_id}.", ref.subtask)

        updated = _merged(ref.subtask, updates)
        index = next(i for i, s in enumerate(ref.task.subtasks) if s.id == subtask_id)
        ref.task.subtasks[index] = updated
        ref.task.touch()
        self._write_epic(ref.epic)
        return OperationResult.ok(f"Subtask {subtask_id} updated.", updated)

    @_guarded
    def delete_subtask(self, subtask_id: str) -> OperationResult:
        ref = self.repository.find_subtask(subtask_id)
        if ref is None:
            return _not_found("Subtask", subtask_id)
        ref.task.subtasks = [s for s in ref.task.subtasks if s.id != subtask_id]
        ref.task.touch()
        self._write_epic(ref.epic)
        return OperationResult.ok(f"Subtask {subtask_id} deleted from Task {ref.task.id}.")

    # --- Any item ---

    @_guarded
    def set_status(self, item_id: str, status: str) -> OperationResult:
        """Change the status of an epic, task or subtask."""
        if self.repository.get_by_id(item_id) is not None:
            return self.update_epic(item_id, status=status)
        if self.repository.find_task(item_id) is not None:
            return self.update_task(item_id, status=status)
        if self.repository.find_subtask(item_id) is not None:
            return self.update_subtask(item_id, status=status)
        return _not_found("Item", item_id)

    @_guarded
    def delete_item(self, item_id: str) -> OperationResult:
        if self.repository.get_by_id(item_id) is not None:
            return self.delete_epic(item_id)
        if self.repository.find_task(item_id) is not None:
            return self.delete_task(item_id)
        if self.repository.find_subtask(item_id) is not None:
            return self.delete_subtask(item_id)
        return _not_found("Item", item_id)

    # --- Files ---

    @_guarded
    def add_file(self, item_id: str, file_path: str, description: Optional[str] = None) -> OperationResult:
        ref = self.repository.find_item(item_id)
        if ref is None:
            return _not_found("Item", item_id)
        item = ref.item
        what = _kind_name(ref)
        if item.find_file(file_path) is not None:
            return OperationResult.ok(f"File {file_path} already attached to {what} {item_id}.")

        item.files.append(AssociatedFile.new(file_path, description))
        item.touch()
        self._write_epic(ref.epic)
        return OperationResult.ok(f"File {file_path} added to {what} {item_id}.")

    @_guarded
    def remove_file(self, item_id: str, file_path: str) -> OperationResult:
        ref = self.repository.find_item(item_id)
        if ref is None:
            return _not_found("Item", item_id)
        item = ref.item
        what = _kind_name(ref)
        if item.find_file(file_path) is None:
            return OperationResult.ok(f"File {file_path} not found in {what} {item_id}.")

        item.files = [f for f in item.files if f.file_path != file_path]
        item.touch()
        self._write_epic(ref.epic)
        return OperationResult.ok(f"File {file_path} removed from {what} {item_id}.")

    # --- Dependencies ---

    @_guarded
    def add_dependency(self, item_id: str, depends_on: str) -> OperationResult:
        """
        Make ``item_id`` depend on ``depends_on``.

        Epics may only depend on epics; tasks may depend on tasks or epics.
        Self-dependencies and edges that would close a cycle are rejected.
        """
        ref = self.repository.find_item(item_id)
        if ref is None:
            return _not_found("Item", item_id)
        target = self.repository.find_item(depends_on)
        if target is None:
            return _not_found("Dependency", depends_on)
        what = _kind_name(ref)
        if ref.kind is ItemKind.EPIC and target.kind is ItemKind.TASK:
            return OperationResult.fail(ErrorKind.VALIDATION_FAILURE, "An Epic can only depend on other Epics.")
        if item_id == depends_on:
            return OperationResult.fail(ErrorKind.CYCLE, f"{what} cannot depend on itself.")

        item = ref.item
        if item.depends_on(depends_on):
            return OperationResult.ok(f"{what} {item_id} already depends on {depends_on}.")
        cycle = resolver.find_cycle(item_id, depends_on, self.repository.get_all())
        if cycle:
            return OperationResult.fail(ErrorKind.CYCLE, "Dependency would create a cycle: " + " -> ".join(cycle), cycle)

        item.dependencies = list(item.dependencies or []) + [depends_on]
        item.touch()
        self._write_epic(ref.epic)
        return OperationResult.ok(f"{depends_on} added as dependency to {what} {item_id}.")

    @_guarded
    def remove_dependency(self, item_id: str, depends_on: str) -> OperationResult:
        ref = self.repository.find_item(item_id)
        if ref is None:
            return _not_found("Item", item_id)
        item = ref.item
        what = _kind_name(ref)
        if not item.depends_on(depends_on):
            return OperationResult.ok(f"{what} {item_id} does not depend on {depends_on}.")

        item.dependencies = [d for d in item.dependencies if d != depends_on]
        item.touch()
        self._write_epic(ref.epic)
        return OperationResult.ok(f"Dependency {depends_on} removed from {what} {item_id}.")

    # --- Queries ---

    @_guarded
    def next_item(self) -> OperationResult:
        epics = self.repository.get_all()
        if not epics:
            return OperationResult.ok("No Epics found to suggest or execute.")
        ref = resolver.suggest_next(epics)
        if ref is None:
            return OperationResult.ok("No ready Epics or Tasks found. Try resolving dependencies first.")
        if ref.kind is ItemKind.TASK:
            label = "In progress" if ref.task.status is Status.IN_PROGRESS else "Suggested next Task"
            return OperationResult.ok(f"{label}: {ref.task.title} ({ref.task.id})", ref)
        return OperationResult.ok(f"Suggested Epic (no ready tasks found): {ref.epic.title} ({ref.epic.id})", ref)

    @_guarded
    def readiness(self, item_id: str) -> OperationResult:
        ref = self.repository.find_item(item_id)
        if ref is None:
            return _not_found("Item", item_id)
        blocking = resolver.blocking_dependencies(ref, self.repository.get_all())
        if blocking:
            return OperationResult.ok(f"{_kind_name(ref)} {item_id} is blocked by: {', '.join(blocking)}", False)
        return OperationResult.ok(f"{_kind_name(ref)} {item_id} is ready.", True)

    @_guarded
    def completion(self, epic_id: str) -> OperationResult:
        epic = self.repository.get_by_id(epic_id)
        if epic is None:
            return _not_found("Epic", epic_id)
        result = calculate_completion(epic)
        return OperationResult.ok(
            f"{result.percentage}% complete ({result.completed_tasks}/{result.total_tasks} tasks, "
            f"{result.completed_subtasks}/{result.total_subtasks} subtasks)",
            result,
        )

    @_guarded
    def dependents(self, item_id: str, transitive: bool = False) -> OperationResult:
        epics = self.repository.get_all()
        if self.repository.find_item(item_id) is None:
            return _not_found("Item", item_id)
        if transitive:
            ids = resolver.find_all_dependents(item_id, epics)
        else:
            ids = resolver.find_dependents(item_id, epics).ids
        if not ids:
            return OperationResult.ok(f"Nothing depends on {item_id}.", [])
        return OperationResult.ok(f"{len(ids)} item(s) depend on {item_id}.", ids)

    @_guarded
    def verify(self) -> OperationResult:
        store = self.repository.store
        problems = validate_index_document(store.to_index()) + verify_epics(store.get_all())
        if problems:
            return OperationResult.fail(
                ErrorKind.VALIDATION_FAILURE,
                f"{len(problems)} problem(s) found:\n" + "\n".join(f"- {p}" for p in problems),
                problems,
            )
        return OperationResult.ok(f"{len(store)} epic(s) verified, no problems found.", [])
