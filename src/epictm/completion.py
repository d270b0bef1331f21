import math
from pydantic import BaseModel
from epictm.models import Epic, Status, SubtaskStatus

TASK_WEIGHT = 0.7
SUBTASK_WEIGHT = 0.3


class Completion(BaseModel):
    """Progress figures for one epic."""

    completed_tasks: int
    total_tasks: int
    completed_subtasks: int
    total_subtasks: int
    task_pct: float
    subtask_pct: float
    percentage: int


def calculate_completion(epic: Epic) -> Completion:
    """
    Weighted completion of an epic: 70% tasks, 30% subtasks.

    With no subtasks the subtask term counts as complete. An epic without any
    tasks has nothing planned yet and reports 0.
    """
    total_tasks = len(epic.tasks)
    completed_tasks = sum(1 for t in epic.tasks if t.status == Status.DONE)

    subtasks = [s for t in epic.tasks for s in t.subtasks]
    total_subtasks = len(subtasks)
    completed_subtasks = sum(1 for s in subtasks if s.status == SubtaskStatus.DONE)

    task_pct = completed_tasks / total_tasks * 100 if total_tasks else 0.0
    subtask_pct = completed_subtasks / total_subtasks * 100 if total_subtasks else 100.0

    percentage = 0
    if total_tasks:
        # half-up rounding, not banker's
        percentage = math.floor(task_pct * TASK_WEIGHT + subtask_pct * SUBTASK_WEIGHT + 0.5)

    return Completion(
        completed_tasks=completed_tasks,
        total_tasks=total_tasks,
        completed_subtasks=completed_subtasks,
        total_subtasks=total_subtasks,
        task_pct=task_pct,
        subtask_pct=subtask_pct,
        percentage=percentage,
    )


def progress_bar(percentage: int, length: int = 20) -> str:
    filled = round(percentage * length / 100)
    return f"{'█' * filled}{'░' * (length - filled)} {percentage}%"
