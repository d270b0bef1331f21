"""Unit tests for Pydantic models."""

import pytest
from datetime import timedelta
from epictm.models import (
    AssociatedFile, Epic, EpicIndex, ItemKind, ItemRef, Priority, Status,
    Subtask, SubtaskStatus, Task, priority_rank,
)
from conftest import at, make_epic, make_task


class TestSubtask:
    """Test Subtask model."""

    def test_new_subtask(self):
        """Test creating a subtask through the factory."""
        subtask = Subtask.new("Write the parser")
        assert subtask.id
        assert subtask.status == SubtaskStatus.TODO
        assert subtask.created_at.tzinfo is not None

    def test_subtask_rejects_in_progress(self):
        """Subtasks only know todo and done."""
        with pytest.raises(ValueError):
            Subtask(id="s1", description="x", status="in-progress")

    def test_identifier_validation(self):
        """Test that empty and path-like IDs are refused."""
        with pytest.raises(ValueError, match="must not be empty"):
            Subtask(id="", description="x")
        with pytest.raises(ValueError, match="Invalid identifier"):
            Subtask(id="../escape", description="x")

    @pytest.mark.parametrize("reserved", ["epics.json", ".hidden", ".", ".."])
    def test_reserved_identifiers(self, reserved):
        """IDs that would collide with the index file or hidden temp files are refused."""
        with pytest.raises(ValueError, match="Invalid identifier"):
            Epic(id=reserved, description="x")


class TestTask:
    """Test Task model."""

    def test_new_task(self):
        """Test the factory assigns ID, status and timestamps."""
        task = Task.new("Implement store", priority="high", complexity=5)
        assert task.status == Status.TODO
        assert task.priority == Priority.HIGH
        assert task.created_at == task.updated_at
        assert task.subtasks == []
        assert task.files == []
        assert task.dependencies is None

    def test_complexity_range(self):
        """Complexity must stay within 1-10."""
        Task.new("ok", complexity=1)
        Task.new("ok", complexity=10)
        with pytest.raises(ValueError):
            Task.new("too much", complexity=11)
        with pytest.raises(ValueError):
            Task.new("too little", complexity=0)

    def test_duplicate_subtask_ids(self):
        """Subtask IDs are unique within a task."""
        with pytest.raises(ValueError, match="Duplicate subtask id"):
            Task.new("t", subtasks=[Subtask(id="s", description="a"), Subtask(id="s", description="b")])

    def test_duplicate_file_paths(self):
        """A file can only be attached once per owner."""
        with pytest.raises(ValueError, match="Duplicate file path"):
            Task.new("t", files=[AssociatedFile.new("a.py"), AssociatedFile.new("a.py")])

    def test_updated_before_created(self):
        """Test time validation."""
        with pytest.raises(ValueError, match="updatedAt must not be before createdAt"):
            Task(id="t", description="x", created_at=at(10), updated_at=at(0))

    def test_touch_keeps_created_at(self):
        """touch() only moves updated_at."""
        task = make_task("t1")
        created = task.created_at
        task.touch()
        assert task.created_at == created
        assert task.updated_at > created

    def test_find_subtask(self):
        """Test subtask lookup by ID."""
        task = make_task("t1", subtasks=["todo", "done"])
        assert task.find_subtask("t1-s1").status == SubtaskStatus.DONE
        assert task.find_subtask("missing") is None

    def test_status_assignment_is_validated(self):
        """Assigning a raw string coerces to the enum, garbage is refused."""
        task = make_task("t1")
        task.status = "in-progress"
        assert task.status == Status.IN_PROGRESS
        with pytest.raises(ValueError):
            task.status = "blocked"


class TestEpic:
    """Test Epic model."""

    def test_title_is_first_line(self):
        """The title is the first line of the description."""
        epic = make_epic("e1")
        assert epic.title == "Epic e1"

    def test_duplicate_task_ids(self):
        """Task IDs are unique within an epic."""
        with pytest.raises(ValueError, match="Duplicate task id"):
            make_epic("e1", tasks=[make_task("t"), make_task("t")])

    def test_find_task_and_index(self):
        """Test task lookup and position."""
        epic = make_epic("e1", tasks=[make_task("a"), make_task("b")])
        assert epic.find_task("b").id == "b"
        assert epic.task_index("b") == 1
        assert epic.task_index("zzz") == -1

    def test_depends_on(self):
        """Test dependency membership."""
        epic = make_epic("e1", dependencies=["e0"])
        assert epic.depends_on("e0")
        assert not epic.depends_on("e2")
        assert not make_epic("e2").depends_on("e0")


class TestSerialization:
    """Test the on-disk JSON representation."""

    def test_camel_case_keys(self):
        """Stored documents use camelCase and omit unset optionals."""
        task = make_task("t1")
        task.files.append(AssociatedFile(file_path="src/a.py", added_at=at(1)))
        data = make_epic("e1", tasks=[task]).to_json_dict()

        assert data["createdAt"].startswith("2024-01-01T00:00:00")
        assert "updatedAt" in data
        assert "priority" not in data
        assert "dependencies" not in data
        assert data["status"] == "todo"
        assert data["tasks"][0]["files"][0]["filePath"] == "src/a.py"
        assert "addedAt" in data["tasks"][0]["files"][0]

    def test_in_progress_value(self):
        """in-progress is stored with its hyphen."""
        assert make_task("t", status="in-progress").to_json_dict()["status"] == "in-progress"

    def test_parse_camel_case_document(self):
        """Documents written by other tools parse with their camelCase keys."""
        epic = Epic.model_validate({
            "id": "e1",
            "description": "Imported",
            "status": "in-progress",
            "createdAt": "2024-01-01T00:00:00.000Z",
            "updatedAt": "2024-01-02T00:00:00.000Z",
            "tasks": [{
                "id": "t1",
                "description": "Nested",
                "status": "done",
                "createdAt": "2024-01-01T00:00:00.000Z",
                "updatedAt": "2024-01-01T00:00:00.000Z",
                "subtasks": [],
                "files": [],
                "testStrategy": "unit tests",
            }],
            "files": [],
        })
        assert epic.status == Status.IN_PROGRESS
        assert epic.tasks[0].test_strategy == "unit tests"
        assert epic.updated_at - epic.created_at == timedelta(days=1)

    def test_index_document(self):
        """An epic survives a pass through the index document."""
        epic = make_epic("e1", tasks=[make_task("t1", subtasks=["done"])])
        index = EpicIndex.model_validate({"e1": epic.to_json_dict()})
        assert index.root["e1"] == epic


class TestReferences:
    """Test the Epic-or-Task tagged reference."""

    def test_item_ref_kinds(self):
        """ItemRef resolves to the epic or the task it names."""
        task = make_task("t1")
        epic = make_epic("e1", tasks=[task])

        epic_ref = ItemRef.of_epic(epic)
        task_ref = ItemRef.of_task(epic, task)

        assert epic_ref.kind is ItemKind.EPIC
        assert epic_ref.item is epic
        assert epic_ref.id == "e1"
        assert task_ref.kind is ItemKind.TASK
        assert task_ref.item is task
        assert task_ref.epic is epic

    def test_priority_rank(self):
        """High sorts before medium, low and unset."""
        ranks = [priority_rank(Priority.HIGH), priority_rank(Priority.MEDIUM),
                 priority_rank(Priority.LOW), priority_rank(None)]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 4
