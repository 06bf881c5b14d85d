"""
Error taxonomy and handling policy for the synchronization engine.

Every failure raised inside the engine is a SyncError subclass tagged with
an ErrorKind. How each kind is logged and whether it is fatal at startup
lives in ERROR_POLICIES, so call sites only raise and log through
log_sync_error().
"""

from enum import Enum
from typing import Dict, NamedTuple


class ErrorKind(str, Enum):
    """Kinds of failures the engine distinguishes."""
    INVALID_FORMAT = "invalid_format"
    FETCH = "fetch"
    PUBLISH = "publish"
    PURGE = "purge"
    CONFIG = "config"
    STORAGE = "storage"


class ErrorPolicy(NamedTuple):
    log_level: str
    fatal_at_startup: bool
    blocks_success: bool


ERROR_POLICIES: Dict[ErrorKind, ErrorPolicy] = {
    # skip the label, keep going
    ErrorKind.INVALID_FORMAT: ErrorPolicy("warning", False, False),
    # retried on the next sweep, schedule untouched
    ErrorKind.FETCH: ErrorPolicy("error", False, True),
    ErrorKind.PUBLISH: ErrorPolicy("error", False, True),
    # stale views recover on their own
    ErrorKind.PURGE: ErrorPolicy("warning", False, False),
    ErrorKind.CONFIG: ErrorPolicy("error", True, True),
    ErrorKind.STORAGE: ErrorPolicy("error", False, True),
}


class SyncError(Exception):
    """Base class for engine failures."""
    kind: ErrorKind = ErrorKind.STORAGE

    @property
    def policy(self) -> ErrorPolicy:
        return ERROR_POLICIES[self.kind]


class InvalidFormat(SyncError):
    """A category label or artifact name does not encode a job identity."""
    kind = ErrorKind.INVALID_FORMAT


class FetchError(SyncError):
    """The remote API could not be fetched."""
    kind = ErrorKind.FETCH


class PublishError(SyncError):
    """A wiki page could not be written."""
    kind = ErrorKind.PUBLISH


class PurgeError(SyncError):
    """Cached wiki views could not be purged."""
    kind = ErrorKind.PURGE


class ConfigError(SyncError):
    """Configuration is malformed or a required secret is missing."""
    kind = ErrorKind.CONFIG


class StorageError(SyncError):
    """A persisted artifact could not be read or written."""
    kind = ErrorKind.STORAGE


def log_sync_error(logger, error: SyncError, message: str, **context) -> None:
    """
    Log a SyncError at the level its policy prescribes.

    Args:
        logger: structlog logger (usually a bound component logger)
        error: The failure to log
        message: Event message
        **context: Extra key/value pairs for the log entry
    """
    policy = error.policy
    getattr(logger, policy.log_level)(
        message,
        error=str(error),
        error_kind=error.kind.value,
        **context
    )
