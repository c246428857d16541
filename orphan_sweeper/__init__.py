"""Public API for the orphaned temporary file sweeper."""

from .exceptions import (
    ConfigurationError,
    InvalidDirectoryDateError,
    ObjectNotFoundError,
    StorageError,
    SweeperError,
)
from .storage import LocalStorage, ObjectStorage, S3Storage
from .sweeper import DirectoryFailure, FileFailure, RetentionSweeper, SweepResult, SweptFile
from . import utils

__all__ = [
    "ConfigurationError",
    "DirectoryFailure",
    "FileFailure",
    "InvalidDirectoryDateError",
    "LocalStorage",
    "ObjectNotFoundError",
    "ObjectStorage",
    "RetentionSweeper",
    "S3Storage",
    "StorageError",
    "SweepResult",
    "SweeperError",
    "SweptFile",
    "utils",
]
