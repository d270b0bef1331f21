"""
EpicStore - in-memory index of Epics and everything nested in them.

Epics own their Tasks and Tasks own their Subtasks by value, so every nested
lookup scans the Epic list. Nothing here touches disk; see
``epictm.data.core.EpicRepository`` for persistence.
"""
from typing import Dict, Iterable, Iterator, List, Optional
from epictm.models import Epic, EpicIndex, ItemRef, SubtaskRef, TaskRef
from epictm.logs import get_logger

log = get_logger("store")


class EpicStore:
    """Insertion-ordered mapping of Epic ID to Epic."""

    def __init__(self, epics: Optional[Iterable[Epic]] = None):
        self._epics: Dict[str, Epic] = {}
        for epic in epics or []:
            self.add(epic)

    def __len__(self) -> int:
        return len(self._epics)

    def __contains__(self, epic_id: str) -> bool:
        return epic_id in self._epics

    def __iter__(self) -> Iterator[Epic]:
        return iter(list(self._epics.values()))

    # --- Reads ---

    def get_all(self) -> List[Epic]:
        return list(self._epics.values())

    def get_by_id(self, epic_id: str) -> Optional[Epic]:
        return self._epics.get(epic_id)

    def find_task(self, task_id: str) -> Optional[TaskRef]:
        """Find a task anywhere in the hierarchy together with its owning epic."""
        for epic in self._epics.values():
            task = epic.find_task(task_id)
            if task is not None:
                return TaskRef(epic, task)
        return None

    def find_subtask(self, subtask_id: str) -> Optional[SubtaskRef]:
        """Find a subtask together with its owning epic and task."""
        for epic in self._epics.values():
            for task in epic.tasks:
                subtask = task.find_subtask(subtask_id)
                if subtask is not None:
                    return SubtaskRef(epic, task, subtask)
        return None

    def find_item(self, item_id: str) -> Optional[ItemRef]:
        """Resolve an ID that may name either a task or an epic."""
        ref = self.find_task(item_id)
        if ref is not None:
            return ItemRef.of_task(ref.epic, ref.task)
        epic = self.get_by_id(item_id)
        if epic is not None:
            return ItemRef.of_epic(epic)
        return None

    # --- Writes ---

    def add(self, epic: Epic) -> bool:
        """Add an epic. Fails when the ID is missing or already present."""
        epic_id = getattr(epic, "id", None)
        if not epic_id:
            log.warning("Refusing to add epic without an ID")
            return False
        if epic_id in self._epics:
            log.debug(f"Epic {epic_id} already exists")
            return False
        self._epics[epic_id] = epic
        return True

    def update(self, epic_id: str, epic: Epic) -> bool:
        """
        Replace the whole epic stored under ``epic_id``.

        Callers merge any fields they want to keep before calling this.
        """
        if epic_id not in self._epics:
            return False
        if getattr(epic, "id", None) != epic_id:
            log.warning(f"Refusing to store epic {getattr(epic, 'id', None)!r} under ID {epic_id}")
            return False
        self._epics[epic_id] = epic
        return True

    def delete(self, epic_id: str) -> bool:
        """Remove an epic and, with it, all of its tasks and subtasks."""
        if epic_id not in self._epics:
            return False
        del self._epics[epic_id]
        return True

    def clear(self):
        self._epics.clear()

    def replace_all(self, epics: Iterable[Epic]):
        """Swap the whole snapshot, keeping this instance."""
        self._epics.clear()
        for epic in epics:
            if not self.add(epic):
                log.warning(f"Skipping duplicate epic {epic.id}")

    # --- Index document ---

    def to_index(self) -> Dict[str, dict]:
        return {epic_id: epic.to_json_dict() for epic_id, epic in self._epics.items()}

    @classmethod
    def from_index(cls, data: Dict[str, dict]) -> 'EpicStore':
        """Build a store from a parsed index document. Raises pydantic's ValidationError."""
        index = EpicIndex.model_validate(data)
        return cls(index.root.values())
