"""
Command Line Interface for epictm.
"""

import click
from pathlib import Path
from .version import VERSION
from .config import load_settings
from .recovery import EpicTMError
from .data import EpicRepository, RepositoryState
from .service import EpicService, OperationResult
from .completion import calculate_completion, progress_bar
from .models import Epic, Status, SubtaskStatus, Priority

STATUS_EMOJI = {
    Status.DONE: '✅',
    Status.IN_PROGRESS: '🚧',
    Status.TODO: '⏳',
}

PRIORITY_EMOJI = {
    Priority.HIGH: '🔴',
    Priority.MEDIUM: '🟠',
    Priority.LOW: '🟢',
}

STATUS_CHOICE = click.Choice([s.value for s in Status])
PRIORITY_CHOICE = click.Choice([p.value for p in Priority])


def _emit(result: OperationResult):
    """Print a result; failures go to stderr and exit with status 1."""
    for warning in result.warnings:
        click.echo(f"⚠️  {warning}", err=True)
    if result.success:
        click.echo(result.message)
    else:
        click.echo(f"❌ {result.message}", err=True)
        click.get_current_context().exit(1)


def _service(ctx: click.Context) -> EpicService:
    """The loaded service for this invocation."""
    service = ctx.obj
    if service.repository.state is not RepositoryState.LOADED:
        result = service.load()
        if not result.success or result.warnings:
            _emit(result)
    return service


@click.group()
@click.version_option(version=VERSION, prog_name="epictm")
@click.option('--base-path', type=click.Path(file_okay=False, path_type=Path), default=None,
              help='Directory the storage root lives in (default: settings or current directory)')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path), default=None,
              help='Settings file (default: ./epictm.yml when present)')
@click.pass_context
def main(ctx, base_path, config_path):
    """
    epictm - Epic -> Task -> Subtask planning store.

    Data lives in <base-path>/<root>/epics/ as JSON.
    """
    try:
        settings = load_settings(config_path)
    except EpicTMError as e:
        raise click.ClickException(str(e))

    repository = EpicRepository(
        base_path or settings.base_path,
        root_name=settings.root_name,
        quarantine_corrupt=settings.quarantine_corrupt,
    )
    ctx.obj = EpicService(repository, require_file_association=settings.require_file_association)


@main.command()
@click.pass_context
def init(ctx):
    """Create the storage root if it does not exist yet."""
    service = ctx.obj
    _emit(service.load())


@main.command()
@click.pass_context
def info(ctx):
    """Show where data is stored."""
    _emit(_service(ctx).storage_info())


@main.command(name='list')
@click.option('--status', type=STATUS_CHOICE, default=None, help='Only show epics with this status')
@click.pass_context
def list_epics(ctx, status):
    """List all epics."""
    _emit(_service(ctx).list_epics(status))


def _render_epic(service: EpicService, epic: Epic) -> str:
    completion = calculate_completion(epic)
    priority = f" {PRIORITY_EMOJI[epic.priority]}" if epic.priority else ""
    lines = [
        f"# {STATUS_EMOJI[epic.status]} {epic.title}{priority}",
        f"ID: {epic.id}",
        f"Progress: {progress_bar(completion.percentage)}",
    ]
    if epic.dependencies:
        lines.append(f"Depends on: {', '.join(epic.dependencies)}")
    dependents = service.dependents(epic.id)
    if dependents.data:
        lines.append(f"Required by: {', '.join(dependents.data)}")

    if epic.tasks:
        lines.append("")
        lines.append("## Tasks")
    for task in epic.tasks:
        checkbox = "[x]" if task.status == Status.DONE else "[ ]"
        task_priority = f" {PRIORITY_EMOJI[task.priority]}" if task.priority else ""
        lines.append(f"- {checkbox} {STATUS_EMOJI[task.status]} {task.title}{task_priority} ({task.id})")
        if task.dependencies:
            lines.append(f"    depends on: {', '.join(task.dependencies)}")
        for subtask in task.subtasks:
            mark = "x" if subtask.status == SubtaskStatus.DONE else " "
            lines.append(f"    - [{mark}] {subtask.description} ({subtask.id})")

    if epic.files:
        lines.append("")
        lines.append("## Files")
        for f in epic.files:
            lines.append(f"- {f.file_path}" + (f": {f.description}" if f.description else ""))
    return "\n".join(lines)


@main.command()
@click.argument('epic_id')
@click.pass_context
def show(ctx, epic_id):
    """Show an epic with its tasks and subtasks."""
    service = _service(ctx)
    result = service.get_epic(epic_id)
    if not result.success:
        _emit(result)
    click.echo(_render_epic(service, result.data))


@main.command(name='add-epic')
@click.argument('description')
@click.option('--priority', type=PRIORITY_CHOICE, default=None)
@click.option('--complexity', type=click.IntRange(1, 10), default=None)
@click.pass_context
def add_epic(ctx, description, priority, complexity):
    """Create a new epic."""
    _emit(_service(ctx).create_epic(description, priority=priority, complexity=complexity))


@main.command(name='add-task')
@click.argument('epic_id')
@click.argument('description')
@click.option('--priority', type=PRIORITY_CHOICE, default=None)
@click.option('--complexity', type=click.IntRange(1, 10), default=None)
@click.option('--depends-on', 'depends_on', multiple=True, help='ID of a task or epic this task depends on')
@click.pass_context
def add_task(ctx, epic_id, description, priority, complexity, depends_on):
    """Create a task inside an epic."""
    service = _service(ctx)
    _emit(service.create_task(epic_id, description, dependencies=list(depends_on) or None,
                              priority=priority, complexity=complexity))


@main.command(name='add-subtask')
@click.argument('task_id')
@click.argument('description')
@click.pass_context
def add_subtask(ctx, task_id, description):
    """Create a subtask inside a task."""
    _emit(_service(ctx).create_subtask(task_id, description))


@main.command(name='set-status')
@click.argument('item_id')
@click.argument('status', type=STATUS_CHOICE)
@click.pass_context
def set_status(ctx, item_id, status):
    """Change the status of an epic, task or subtask."""
    _emit(_service(ctx).set_status(item_id, status))


@main.command()
@click.argument('item_id')
@click.confirmation_option(prompt='Delete this item and everything inside it?')
@click.pass_context
def delete(ctx, item_id):
    """Delete an epic, task or subtask."""
    _emit(_service(ctx).delete_item(item_id))


@main.command()
@click.argument('item_id')
@click.argument('file_path')
@click.option('--description', default=None, help='Why the file matters')
@click.option('--remove', is_flag=True, help='Detach the file instead')
@click.pass_context
def attach(ctx, item_id, file_path, description, remove):
    """Associate a file with an epic or task."""
    service = _service(ctx)
    if remove:
        _emit(service.remove_file(item_id, file_path))
    else:
        _emit(service.add_file(item_id, file_path, description))


@main.command()
@click.argument('item_id')
@click.argument('depends_on')
@click.option('--remove', is_flag=True, help='Remove the dependency instead')
@click.pass_context
def depend(ctx, item_id, depends_on, remove):
    """Make ITEM_ID depend on DEPENDS_ON."""
    service = _service(ctx)
    if remove:
        _emit(service.remove_dependency(item_id, depends_on))
    else:
        _emit(service.add_dependency(item_id, depends_on))


@main.command(name='next')
@click.pass_context
def next_item(ctx):
    """Suggest what to work on next."""
    _emit(_service(ctx).next_item())


@main.command()
@click.argument('epic_id', required=False)
@click.pass_context
def progress(ctx, epic_id):
    """Show completion of one epic, or of all epics."""
    service = _service(ctx)
    if epic_id:
        _emit(service.completion(epic_id))
        return

    epics = service.repository.get_all()
    if not epics:
        click.echo("No Epics found.")
        return
    for epic in epics:
        completion = calculate_completion(epic)
        click.echo(f"{progress_bar(completion.percentage)}  {epic.title} ({epic.id[:8]})")


@main.command()
@click.pass_context
def verify(ctx):
    """Check dependencies and IDs for consistency."""
    _emit(_service(ctx).verify())


if __name__ == '__main__':
    main()
