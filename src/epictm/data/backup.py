import shutil
from pathlib import Path
from datetime import datetime
from typing import List
from epictm.recovery import FileOperationError
from epictm.logs import get_logger

log = get_logger('data.backup')

QUARANTINE_SUFFIX = ".bak"

def _quarantine_name(path: Path) -> Path:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    candidate = path.with_name(f"{path.name}.{timestamp}{QUARANTINE_SUFFIX}")
    counter = 1
    while candidate.exists():
        candidate = path.with_name(f"{path.name}.{timestamp}_{counter}{QUARANTINE_SUFFIX}")
        counter += 1
    return candidate

def quarantine(path: Path) -> Path:
    """Copy an unreadable data file aside before it gets overwritten."""
    path = Path(path)
    destination = _quarantine_name(path)
    try:
        shutil.copy2(path, destination)
    except OSError as e:
        error_msg = f"Could not quarantine {path}: {e}"
        log.error(error_msg)
        raise FileOperationError(error_msg) from e
    log.warning(f"Quarantined unreadable file {path} as {destination.name}")
    return destination

def list_quarantined(directory: Path) -> List[Path]:
    """Quarantined copies in ``directory``, oldest first."""
    directory = Path(directory)
    if not directory.exists():
        return []
    return sorted(p for p in directory.iterdir() if p.is_file() and p.name.endswith(QUARANTINE_SUFFIX))
