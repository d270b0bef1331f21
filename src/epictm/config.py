"""
Settings for the epictm shell.

Precedence, lowest first: defaults, ``epictm.yml`` (or an explicit file),
``EPICTM_*`` environment variables.
"""
import os
import yaml
from pathlib import Path
from typing import Dict, Mapping, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from epictm.recovery import FileOperationError, InvalidItemError
from epictm.logs import get_logger

log = get_logger("config")

CONFIG_FILENAME = "epictm.yml"

ENV_VARS = {
    'EPICTM_BASE_PATH': 'base_path',
    'EPICTM_ROOT_NAME': 'root_name',
    'EPICTM_REQUIRE_FILES': 'require_file_association',
    'EPICTM_QUARANTINE_CORRUPT': 'quarantine_corrupt',
}


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    base_path: Path = Field(default_factory=Path.cwd, description="Directory the storage root is created in")
    root_name: str = Field(default="epictm", min_length=1, description="Name of the storage root directory")
    require_file_association: bool = Field(default=True, description="Items need an associated file before they can be done")
    quarantine_corrupt: bool = Field(default=True, description="Copy an unreadable index aside before resetting it")


def _read_yaml(path: Path) -> Dict:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise InvalidItemError(f"YAML syntax error in {path}: {e}") from e
    except OSError as e:
        raise FileOperationError(f"Failed to read config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidItemError(f"Config file {path} must contain a mapping")
    return data


def load_settings(path: Union[Path, str, None] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from the config file and the environment."""
    environ = os.environ if environ is None else environ
    values: Dict = {}

    config_path = Path(path) if path is not None else Path.cwd() / CONFIG_FILENAME
    if config_path.exists():
        log.debug(f"Reading settings from {config_path}")
        values.update(_read_yaml(config_path))
    elif path is not None:
        raise InvalidItemError(f"Config file not found: {config_path}")

    for var, field in ENV_VARS.items():
        if environ.get(var):
            values[field] = environ[var]

    try:
        return Settings(**values)
    except ValidationError as e:
        raise InvalidItemError(f"Invalid settings: {e}") from e
