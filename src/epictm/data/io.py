import tempfile, json, os
from typing import Union, Dict, Any, Optional
from pathlib import Path
from epictm.recovery import FileOperationError, FatalError, CorruptionError
from epictm.logs import get_logger

log = get_logger("data.io")

def _cleanup(temp_path : Optional[str]):
    if temp_path is None or not os.path.exists(temp_path):
        return
    try:
        os.unlink(temp_path)
        log.debug(f"Cleaned up temporary file: {temp_path}")
    except OSError as cleanup_error:
        # Don't raise while handling another error, just log
        log.warning(f"Could not clean up temp file {temp_path}: {cleanup_error}")

def ensure_dir(directory : Path):
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        error_msg = f"Cannot create directory {directory}: {e}"
        log.error(error_msg)
        raise FileOperationError(error_msg) from e

def atomic_write(file_path : Union[Path, str], data : Dict[str, Any], create_dirs : bool = False):
    """
    Serialize and save data to a pretty-printed UTF-8 JSON file using atomic updates.
    """
    file_path = Path(file_path)
    temp_path = None

    try:
        if create_dirs:
            ensure_dir(file_path.parent)

        # Serialize before touching the filesystem so bad data never leaves a temp file behind
        payload = json.dumps(data, indent=2, ensure_ascii=False)

        # Create temporary file in the same directory as target for atomicity
        with tempfile.NamedTemporaryFile(mode='w', encoding='utf-8', dir=file_path.parent, prefix=f".{file_path.name}.", suffix='.tmp', delete=False) as temp_file:
            temp_path = temp_file.name
            temp_file.write(payload)
            temp_file.flush()
            os.fsync(temp_file.fileno())

        # Atomic replace - this either completely succeeds or completely fails
        os.replace(temp_path, file_path)
        log.debug(f"Successfully saved JSON file: {file_path}")
        return True

    except (TypeError, ValueError) as e:
        _cleanup(temp_path)
        # FATAL ERROR: Data cannot be serialized
        error_msg = (f"Data serialization failed for {file_path}. "
                    f"In-memory data may be corrupt or contain non-serializable types: {e}")
        log.critical(error_msg)
        raise FatalError(error_msg) from e

    except OSError as e:
        _cleanup(temp_path)
        # RECOVERABLE ERROR: I/O issues
        error_msg = f"I/O error saving JSON file {file_path}: {e}"
        log.error(error_msg)
        raise FileOperationError(error_msg) from e

def load_json_file(file_path : Union[Path, str]) -> Union[None, Dict]:
    """
    Load and parse a JSON object file.

    Args:
        file_path: Path to the JSON file

    Returns:
        Parsed data as dict, or None if the file doesn't exist

    Raises:
        CorruptionError: the file is not valid UTF-8 JSON or not a JSON object
        FileOperationError: the file exists but cannot be read
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return None

    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)

    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        # Syntax errors mean a corrupted file
        raise CorruptionError(f"JSON syntax error in {file_path}: {e}") from e
    except OSError as e:
        # I/O errors are recoverable
        raise FileOperationError(f"Failed to read file {file_path}: {e}") from e

    # Basic sanity check for data corruption
    if not isinstance(data, dict):
        raise CorruptionError(f"File {file_path} contains invalid data structure")

    return data
