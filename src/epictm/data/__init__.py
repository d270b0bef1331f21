"""
Data management submodule: JSON file I/O, index validation and the file-backed repository.
"""

from .core import EpicRepository, LoadReport, RepositoryState
from .validate import validate_index_document, verify_epics
from .backup import quarantine, list_quarantined

__all__ = [
    'EpicRepository',
    'LoadReport',
    'RepositoryState',
    'validate_index_document',
    'verify_epics',
    'quarantine',
    'list_quarantined',
]
