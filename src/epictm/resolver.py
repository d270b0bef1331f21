"""
Dependency and readiness resolution over a snapshot of Epics.

Everything here is a pure function of the epic list passed in. A dependency
ID may name a Task or an Epic and is resolved by scanning the whole list.
"""
from typing import Dict, Iterable, List, NamedTuple, Optional, Set, Union
from epictm.models import Epic, ItemRef, Status, Task, TaskRef, priority_rank

WorkItem = Union[Epic, Task, ItemRef]


class Dependents(NamedTuple):
    epics: List[Epic]
    tasks: List[TaskRef]

    @property
    def ids(self) -> List[str]:
        return [e.id for e in self.epics] + [ref.task.id for ref in self.tasks]

    def __bool__(self) -> bool:
        return bool(self.epics or self.tasks)


def _unwrap(item: WorkItem) -> Union[Epic, Task]:
    return item.item if isinstance(item, ItemRef) else item


def is_done(item_id: str, epics: Iterable[Epic]) -> bool:
    """True when ``item_id`` names a done Task or a done Epic."""
    for epic in epics:
        if epic.id == item_id and epic.status == Status.DONE:
            return True
        task = epic.find_task(item_id)
        if task is not None and task.status == Status.DONE:
            return True
    return False


def blocking_dependencies(item: WorkItem, epics: Iterable[Epic]) -> List[str]:
    """Dependency IDs of ``item`` that are unresolved or not done yet."""
    epics = list(epics)
    return [dep for dep in (_unwrap(item).dependencies or []) if not is_done(dep, epics)]


def is_ready(item: WorkItem, epics: Iterable[Epic]) -> bool:
    """
    An Epic or Task is ready when every dependency resolves to a done item.

    No cycle detection happens here: an item in a dependency cycle is simply
    never ready.
    """
    return not blocking_dependencies(item, epics)


def _next_ready_task(epic: Epic, epics: List[Epic]) -> Optional[Task]:
    ready = [t for t in epic.tasks if t.status == Status.TODO and is_ready(t, epics)]
    if not ready:
        return None
    # min() keeps list order for full ties
    return min(ready, key=lambda t: (priority_rank(t.priority), t.created_at))


def find_next_task(epics: Iterable[Epic]) -> Optional[TaskRef]:
    """
    Pick the next task to work on.

    1. The first in-progress task of any epic that is not done.
    2. Otherwise, in the first ready, not-done epic that has one, the ready
       todo task with the highest priority, then the earliest creation time.
    """
    epics = list(epics)

    for epic in epics:
        if epic.status == Status.DONE:
            continue
        for task in epic.tasks:
            if task.status == Status.IN_PROGRESS:
                return TaskRef(epic, task)

    for epic in epics:
        if epic.status == Status.DONE or not is_ready(epic, epics):
            continue
        task = _next_ready_task(epic, epics)
        if task is not None:
            return TaskRef(epic, task)

    return None


def find_next_epic(epics: Iterable[Epic]) -> Optional[Epic]:
    """First epic that is neither done nor blocked."""
    epics = list(epics)
    return next((e for e in epics if e.status != Status.DONE and is_ready(e, epics)), None)


def suggest_next(epics: Iterable[Epic]) -> Optional[ItemRef]:
    """Next task if there is one, otherwise a ready epic to plan tasks for."""
    epics = list(epics)
    ref = find_next_task(epics)
    if ref is not None:
        return ItemRef.of_task(ref.epic, ref.task)
    epic = find_next_epic(epics)
    if epic is not None:
        return ItemRef.of_epic(epic)
    return None


def find_dependents(item_id: str, epics: Iterable[Epic]) -> Dependents:
    """Epics and tasks whose dependency list names ``item_id``."""
    dependents = Dependents([], [])
    for epic in epics:
        if epic.depends_on(item_id):
            dependents.epics.append(epic)
        for task in epic.tasks:
            if task.depends_on(item_id):
                dependents.tasks.append(TaskRef(epic, task))
    return dependents


def find_all_dependents(item_id: str, epics: Iterable[Epic]) -> List[str]:
    """IDs of everything that depends on ``item_id``, directly or transitively."""
    epics = list(epics)
    visited: Set[str] = {item_id}
    found: List[str] = []
    queue = [item_id]
    while queue:
        current = queue.pop(0)
        for dep_id in find_dependents(current, epics).ids:
            if dep_id not in visited:
                visited.add(dep_id)
                found.append(dep_id)
                queue.append(dep_id)
    return found


def dependency_graph(epics: Iterable[Epic]) -> Dict[str, List[str]]:
    """Item ID -> dependency IDs, for every epic and task."""
    graph: Dict[str, List[str]] = {}
    for epic in epics:
        graph[epic.id] = list(epic.dependencies or [])
        for task in epic.tasks:
            graph[task.id] = list(task.dependencies or [])
    return graph


def _path_between(start: str, goal: str, graph: Dict[str, List[str]]) -> Optional[List[str]]:
    stack = [(start, [start])]
    visited: Set[str] = set()
    while stack:
        node, path = stack.pop()
        if node == goal:
            return path
        if node in visited:
            continue
        visited.add(node)
        for nxt in reversed(graph.get(node, [])):
            stack.append((nxt, path + [nxt]))
    return None


def find_cycle(item_id: str, depends_on: str, epics: Iterable[Epic]) -> Optional[List[str]]:
    """
    The cycle that adding the edge ``item_id -> depends_on`` would close.

    Returns the path ``[item_id, depends_on, ..., item_id]`` or None.
    """
    if item_id == depends_on:
        return [item_id, item_id]
    path = _path_between(depends_on, item_id, dependency_graph(epics))
    if path is None:
        return None
    return [item_id] + path


def find_cycles(epics: Iterable[Epic]) -> List[List[str]]:
    """Every dependency cycle currently present, each reported once."""
    graph = dependency_graph(epics)
    cycles: List[List[str]] = []
    seen: Set[frozenset] = set()
    done: Set[str] = set()

    def visit(node: str, path: List[str], on_path: Set[str]):
        for nxt in graph.get(node, []):
            if nxt in on_path:
                cycle = path[path.index(nxt):] + [nxt]
                key = frozenset(cycle)
                if key not in seen:
                    seen.add(key)
                    cycles.append(cycle)
            elif nxt not in done and nxt in graph:
                on_path.add(nxt)
                visit(nxt, path + [nxt], on_path)
                on_path.discard(nxt)
        done.add(node)

    for node in graph:
        if node not in done:
            visit(node, [node], {node})
    return cycles


def unresolved_dependencies(epics: Iterable[Epic]) -> Dict[str, List[str]]:
    """Item ID -> dependency IDs that name nothing in the snapshot."""
    graph = dependency_graph(epics)
    missing = {}
    for node, deps in graph.items():
        dangling = [d for d in deps if d not in graph]
        if dangling:
            missing[node] = dangling
    return missing
