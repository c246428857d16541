"""Custom exceptions for the orphaned file sweeper."""

from __future__ import annotations


class SweeperError(Exception):
    """Base exception for all sweeper related errors."""


class ConfigurationError(SweeperError):
    """Raised when the sweep is configured with invalid options."""


class StorageError(SweeperError):
    """Raised when the storage backend fails to complete an operation."""


class InvalidDirectoryDateError(SweeperError):
    """Raised when a dated directory does not form a valid calendar date."""


class ObjectNotFoundError(StorageError):
    """Raised when a file is missing from the storage backend."""
