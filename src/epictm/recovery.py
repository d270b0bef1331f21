from enum import Enum


class ErrorKind(Enum):
    NOT_CONFIGURED = "not_configured"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    VALIDATION_FAILURE = "validation_failure"
    IO_FAILURE = "io_failure"
    CORRUPT_STATE = "corrupt_state"
    CYCLE = "cycle"


class EpicTMError(Exception):
    """Base exception for all epictm errors."""
    kind: ErrorKind = ErrorKind.VALIDATION_FAILURE

class RecoverableError(EpicTMError):
    """An error that can be recovered from without data loss."""
    pass

class FatalError(EpicTMError):
    """An error that requires application termination or major intervention."""
    pass

class NotConfiguredError(FatalError):
    """Storage was accessed before a base path was configured."""
    kind = ErrorKind.NOT_CONFIGURED

class InvalidItemError(FatalError):
    """Malformed entity, payload or settings."""
    kind = ErrorKind.VALIDATION_FAILURE

class CorruptionError(FatalError):
    """Corrupted Data Error - from syntax errors in data formats, to just unknown data"""
    kind = ErrorKind.CORRUPT_STATE

class FileOperationError(RecoverableError):
    """File operation failed but can be retried."""
    kind = ErrorKind.IO_FAILURE

class DuplicateItemError(RecoverableError):
    """An item with the same ID already exists."""
    kind = ErrorKind.ALREADY_EXISTS
