"""
EpicRepository - file-backed persistence for the epic store.

Layout under a configured base path ``B``::

    B/<root_name>/epics/epics.json          aggregate index, authoritative on load
    B/<root_name>/epics/<epicID>/epic.json  per-epic mirror, written on save only

Each repository owns one storage root and one ``EpicStore``; nothing is kept
in module globals, so several roots can be used side by side.
"""
import shutil
from enum import Enum
from pathlib import Path
from typing import List, NamedTuple, Optional, Union
from pydantic import ValidationError
from epictm.recovery import CorruptionError, FileOperationError, InvalidItemError, NotConfiguredError
from epictm.models import INDEX_FILE_NAME, Epic, ItemRef, SubtaskRef, TaskRef
from epictm.store import EpicStore
from epictm.logs import get_logger
from .io import atomic_write, ensure_dir, load_json_file
from .validate import validate_index_document
from .backup import quarantine

log = get_logger("data")


class RepositoryState(Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    LOADED = "loaded"


class LoadReport(NamedTuple):
    index_path: Path
    epic_count: int
    bootstrapped: bool = False
    recovered: bool = False
    quarantined: Optional[Path] = None
    error: Optional[str] = None


class EpicRepository:
    DEFAULT_ROOT_NAME = "epictm"
    EPICS_DIR = "epics"
    INDEX_FILE = INDEX_FILE_NAME
    EPIC_FILE = "epic.json"

    def __init__(self, base_path: Union[Path, str, None] = None, root_name: str = DEFAULT_ROOT_NAME,
                 quarantine_corrupt: bool = True):
        self.root_name = root_name
        self.quarantine_corrupt = quarantine_corrupt
        self.state = RepositoryState.UNCONFIGURED
        self._base_dir: Optional[Path] = None
        self._storage_dir: Optional[Path] = None
        self._index_path: Optional[Path] = None
        self._store: Optional[EpicStore] = None
        if base_path is not None:
            self.configure(base_path)

    # --- Configuration ---

    def configure(self, base_path: Union[Path, str]) -> Path:
        """
        Point the repository at ``base_path``. Performs no I/O.

        Reconfiguring keeps the in-memory snapshot; later saves go to the new root.
        """
        if not base_path:
            raise InvalidItemError("Base path is required for storage configuration")

        self._base_dir = Path(base_path).expanduser() / self.root_name
        self._storage_dir = self._base_dir / self.EPICS_DIR
        self._index_path = self._storage_dir / self.INDEX_FILE
        if self._store is None:
            self._store = EpicStore()
        self.state = RepositoryState.CONFIGURED
        log.debug(f"Storage configured at {self._storage_dir}")
        return self._storage_dir

    @property
    def is_configured(self) -> bool:
        return self.state is not RepositoryState.UNCONFIGURED

    def _require_configured(self):
        if not self.is_configured:
            raise NotConfiguredError("Storage not configured. Call configure() first.")

    @property
    def base_dir(self) -> Path:
        self._require_configured()
        return self._base_dir

    @property
    def storage_dir(self) -> Path:
        self._require_configured()
        return self._storage_dir

    @property
    def index_path(self) -> Path:
        self._require_configured()
        return self._index_path

    def epic_folder(self, epic_id: str) -> Path:
        return self.storage_dir / epic_id

    @property
    def store(self) -> EpicStore:
        self._require_configured()
        return self._store

    # --- Load / save ---

    def load(self) -> LoadReport:
        """
        Replace the in-memory store with the contents of the index file.

        A missing index bootstraps an empty root. An unreadable index is
        quarantined (when enabled), reset to empty and rewritten; the report
        says so and a warning is logged.
        """
        self._require_configured()
        ensure_dir(self._storage_dir)

        try:
            data = load_json_file(self._index_path)
        except CorruptionError as e:
            return self._recover(e)

        if data is None:
            log.info(f"No index at {self._index_path}, bootstrapping empty storage")
            self._store.clear()
            self.state = RepositoryState.LOADED
            self.save()
            return LoadReport(self._index_path, 0, bootstrapped=True)

        errors = validate_index_document(data)
        if errors:
            return self._recover(CorruptionError(f"Index {self._index_path} failed validation: {errors[0]}"))

        try:
            loaded = EpicStore.from_index(data)
        except ValidationError as e:
            return self._recover(CorruptionError(f"Index {self._index_path} holds invalid epics: {e}"))

        self._store.replace_all(loaded.get_all())
        self.state = RepositoryState.LOADED
        log.debug(f"Loaded {len(self._store)} epic(s) from {self._index_path}")
        return LoadReport(self._index_path, len(self._store))

    def _recover(self, error: CorruptionError) -> LoadReport:
        # Destructive: the unreadable index is replaced by an empty one
        log.warning(f"Resetting storage, index is unreadable: {error}")
        quarantined = None
        if self.quarantine_corrupt and self._index_path.exists():
            quarantined = quarantine(self._index_path)
        self._store.clear()
        self.state = RepositoryState.LOADED
        self.save()
        return LoadReport(self._index_path, 0, recovered=True, quarantined=quarantined, error=str(error))

    def save(self):
        """Rewrite the index and every per-epic file from the current store."""
        self._require_configured()
        if self.state is not RepositoryState.LOADED and self._index_path.exists():
            log.warning(f"Saving before load(); {self._index_path} will be overwritten")

        ensure_dir(self._storage_dir)
        atomic_write(self._index_path, self._store.to_index())
        for epic in self._store:
            atomic_write(self.epic_folder(epic.id) / self.EPIC_FILE, epic.to_json_dict(), create_dirs=True)
        self._prune_epic_folders()
        log.debug(f"Saved {len(self._store)} epic(s) to {self._storage_dir}")

    def _prune_epic_folders(self):
        """Remove per-epic folders of epics that no longer exist."""
        for folder in self._storage_dir.iterdir():
            if not folder.is_dir() or folder.name in self._store:
                continue
            if not (folder / self.EPIC_FILE).exists():
                continue
            try:
                shutil.rmtree(folder)
            except OSError as e:
                error_msg = f"Cannot remove stale epic folder {folder}: {e}"
                log.error(error_msg)
                raise FileOperationError(error_msg) from e
            log.debug(f"Removed stale epic folder {folder}")

    # --- Store access ---

    def get_all(self) -> List[Epic]:
        return self.store.get_all()

    def get_by_id(self, epic_id: str) -> Optional[Epic]:
        return self.store.get_by_id(epic_id)

    def find_task(self, task_id: str) -> Optional[TaskRef]:
        return self.store.find_task(task_id)

    def find_subtask(self, subtask_id: str) -> Optional[SubtaskRef]:
        return self.store.find_subtask(subtask_id)

    def find_item(self, item_id: str) -> Optional[ItemRef]:
        return self.store.find_item(item_id)

    def add(self, epic: Epic) -> bool:
        return self.store.add(epic)

    def update(self, epic_id: str, epic: Epic) -> bool:
        return self.store.update(epic_id, epic)

    def delete(self, epic_id: str) -> bool:
        return self.store.delete(epic_id)
