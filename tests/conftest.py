"""Shared fixtures for the epictm test suite."""

import os
import tempfile

# Keep log files out of the home directory; must run before epictm is imported
os.environ.setdefault("EPICTM_LOG_DIR", tempfile.mkdtemp(prefix="epictm-logs-"))

from datetime import datetime, timedelta, timezone

import pytest

from epictm.data import EpicRepository
from epictm.models import Epic, Task, Subtask

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    """A fixed timestamp ``minutes`` after T0."""
    return T0 + timedelta(minutes=minutes)


def make_task(task_id, status="todo", priority=None, created=0, dependencies=None, subtasks=()):
    return Task(
        id=task_id,
        description=f"Task {task_id}",
        status=status,
        priority=priority,
        created_at=at(created),
        updated_at=at(created),
        dependencies=dependencies,
        subtasks=[Subtask(id=f"{task_id}-s{i}", description=f"Subtask {i}", status=s, created_at=at(created))
                  for i, s in enumerate(subtasks)],
    )


def make_epic(epic_id, tasks=(), status="todo", dependencies=None, created=0):
    return Epic(
        id=epic_id,
        description=f"Epic {epic_id}\nLonger explanation",
        status=status,
        created_at=at(created),
        updated_at=at(created),
        tasks=list(tasks),
        dependencies=dependencies,
    )


@pytest.fixture
def repository(tmp_path):
    """A configured and loaded repository in a temporary directory."""
    repo = EpicRepository(tmp_path)
    repo.load()
    return repo
