from collections import Counter
from functools import lru_cache
from typing import Dict, Iterable, List, Any
from jsonschema import Draft202012Validator
from epictm.logs import get_logger
from epictm.models import Epic, EpicIndex
from epictm.resolver import find_cycles, unresolved_dependencies

# Configure log for clear output
log = get_logger("data.validate")

@lru_cache(maxsize=1)
def index_schema() -> Dict[str, Any]:
    """JSON Schema of the aggregate index document, generated from the models."""
    schema = EpicIndex.model_json_schema(by_alias=True)
    schema["$schema"] = "https://json-schema.org/draft/2020-12/schema"
    return schema

def _format_error(error) -> str:
    location = "/".join(str(p) for p in error.absolute_path) or "<root>"
    return f"{location}: {error.message}"

def validate_index_document(data: Any) -> List[str]:
    """
    Validates a parsed index document against the index schema.

    Args:
        data: The parsed JSON content of epics.json.

    Returns:
        A list of readable error strings; empty when the document is valid.
    """
    validator = Draft202012Validator(index_schema())
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    messages = [_format_error(e) for e in errors]
    for message in messages:
        log.debug(f"Schema violation: {message}")
    return messages

def verify_epics(epics: Iterable[Epic]) -> List[str]:
    """
    Referential integrity report for a snapshot of epics.

    Reports dangling dependencies, task IDs shared between epics, epics that
    depend on tasks and dependency cycles.
    """
    epics = list(epics)
    problems: List[str] = []

    for item_id, missing in unresolved_dependencies(epics).items():
        for dep in missing:
            problems.append(f"{item_id}: dependency {dep} does not exist")

    task_counts = Counter(t.id for e in epics for t in e.tasks)
    for task_id, count in task_counts.items():
        if count > 1:
            problems.append(f"{task_id}: task ID used in {count} epics")

    task_ids = set(task_counts)
    for epic in epics:
        for dep in epic.dependencies or []:
            if dep in task_ids:
                problems.append(f"{epic.id}: epic depends on task {dep}")

    for cycle in find_cycles(epics):
        problems.append("dependency cycle: " + " -> ".join(cycle))

    if problems:
        log.info(f"Verification found {len(problems)} problem(s)")
    return problems
