"""Retention sweeper for dated temporary upload folders."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional

from .exceptions import ConfigurationError, InvalidDirectoryDateError, ObjectNotFoundError, StorageError
from .storage import ObjectStorage
from .utils import format_bytes, is_strictly_inside, match_dated_directory, parent_path, parse_directory_date

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SweptFile:
    """A file found under an expired temporary folder."""

    path: str
    size_bytes: int

    def to_dict(self) -> dict:
        return {"path": self.path, "size_bytes": self.size_bytes, "size": format_bytes(self.size_bytes)}


@dataclass(slots=True)
class DirectoryFailure:
    directory: str
    error: str

    def to_dict(self) -> dict:
        return {"directory": self.directory, "error": self.error}


@dataclass(slots=True)
class FileFailure:
    path: str
    error: str

    def to_dict(self) -> dict:
        return {"path": self.path, "error": self.error}


@dataclass(slots=True)
class SweepResult:
    """Summary of a single sweep over the temporary prefix."""

    dry_run: bool
    cutoff: date
    files: List[SweptFile] = field(default_factory=list)
    removed_directories: List[str] = field(default_factory=list)
    skipped_directories: List[str] = field(default_factory=list)
    directory_failures: List[DirectoryFailure] = field(default_factory=list)
    file_failures: List[FileFailure] = field(default_factory=list)
    root_error: Optional[str] = None
    cancelled: bool = False

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def total_bytes(self) -> int:
        return sum(item.size_bytes for item in self.files)

    @property
    def ok(self) -> bool:
        return self.root_error is None and not self.directory_failures and not self.file_failures

    def to_dict(self) -> dict:
        return {
            "dry_run": self.dry_run,
            "cutoff": self.cutoff.isoformat(),
            "file_count": self.file_count,
            "total_bytes": self.total_bytes,
            "total_size": format_bytes(self.total_bytes),
            "files": [item.to_dict() for item in self.files],
            "removed_directories": list(self.removed_directories),
            "skipped_directories": list(self.skipped_directories),
            "directory_failures": [item.to_dict() for item in self.directory_failures],
            "file_failures": [item.to_dict() for item in self.file_failures],
            "root_error": self.root_error,
            "cancelled": self.cancelled,
            "ok": self.ok,
        }


class RetentionSweeper:
    """Delete files stored under ``<tmp_prefix>/YYYY/MM/DD`` once the day has expired.

    The date encoded in the folder path is the only age signal; object
    modification times are never consulted. Folders below the prefix that do
    not carry a date are reported as skipped and left alone.
    """

    def __init__(self, storage: ObjectStorage, tmp_prefix: str = "tmp") -> None:
        self.storage = storage
        self.tmp_prefix = tmp_prefix.strip("/")

    @staticmethod
    def cutoff_for(days: int, now: Optional[datetime] = None) -> date:
        if days < 0:
            raise ConfigurationError(f"Retention window must be zero or more days, got {days}")
        moment = now or datetime.now(timezone.utc)
        return (moment - timedelta(days=days)).date()

    def run(
        self,
        days: int = 1,
        dry_run: bool = False,
        now: Optional[datetime] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> SweepResult:
        """Sweep expired temporary folders and return what was (or would be) removed."""

        cutoff = self.cutoff_for(days, now)
        result = SweepResult(dry_run=dry_run, cutoff=cutoff)
        logger.info("Sweeping %s/ for folders dated before %s (dry_run=%s)", self.tmp_prefix, cutoff, dry_run)

        try:
            children = self.storage.list_directories(self.tmp_prefix)
        except StorageError as exc:
            result.root_error = str(exc)
            logger.error("Error listing directories: %s", exc)
            return result

        candidates = self._discover_directories(children, result)
        for dated_root, day in self._group_by_dated_root(candidates, result).items():
            if stop_event is not None and stop_event.is_set():
                result.cancelled = True
                break
            if day >= cutoff:
                continue
            self._sweep_directory(dated_root, result, stop_event)
            if result.cancelled:
                break

        logger.info(
            "Sweep finished: %d file(s), %s, %d failure(s)",
            result.file_count,
            format_bytes(result.total_bytes),
            len(result.directory_failures) + len(result.file_failures),
        )
        return result

    # ---------------------------------------------------------------------
    # Internal helpers
    # ---------------------------------------------------------------------

    def _discover_directories(self, children: List[str], result: SweepResult) -> List[str]:
        directories: List[str] = []
        for child in children:
            directories.append(child)
            try:
                directories.extend(self.storage.list_directories_recursive(child))
            except StorageError as exc:
                result.directory_failures.append(DirectoryFailure(child, str(exc)))
                logger.error("Error listing directory %s: %s", child, exc)
        return directories

    def _group_by_dated_root(self, candidates: List[str], result: SweepResult) -> Dict[str, date]:
        dated: Dict[str, date] = {}
        invalid: set[str] = set()
        for directory in candidates:
            match = match_dated_directory(directory, self.tmp_prefix)
            if match is None:
                # Only reached by folders above or beside the YYYY/MM/DD level.
                if not self._is_date_prefix(directory):
                    result.skipped_directories.append(directory)
                continue
            dated_root, year, month, day = match
            if dated_root in dated or dated_root in invalid:
                continue
            try:
                dated[dated_root] = parse_directory_date(year, month, day)
            except InvalidDirectoryDateError as exc:
                invalid.add(dated_root)
                result.directory_failures.append(DirectoryFailure(dated_root, str(exc)))
                logger.error("Error processing directory %s: %s", dated_root, exc)
        return dated

    def _is_date_prefix(self, directory: str) -> bool:
        """Return True for ``tmp/YYYY`` and ``tmp/YYYY/MM`` levels of the dated layout."""

        relative = directory.strip("/")[len(self.tmp_prefix) + 1:]
        parts = relative.split("/")
        widths = (4, 2)
        return 0 < len(parts) <= 2 and all(
            part.isdigit() and len(part) == width for part, width in zip(parts, widths)
        )

    def _sweep_directory(self, directory: str, result: SweepResult, stop_event: Optional[threading.Event]) -> None:
        try:
            files = self.storage.list_files_recursive(directory)
        except StorageError as exc:
            result.directory_failures.append(DirectoryFailure(directory, str(exc)))
            logger.error("Error processing directory %s: %s", directory, exc)
            return

        for path in files:
            if stop_event is not None and stop_event.is_set():
                result.cancelled = True
                return
            if not is_strictly_inside(path, directory):
                result.file_failures.append(FileFailure(path, f"Listed outside {directory}"))
                logger.warning("Skipping %s: listed outside %s", path, directory)
                continue
            try:
                size = self.storage.file_size(path)
                if not result.dry_run:
                    self.storage.delete_file(path)
            except ObjectNotFoundError:
                # Removed by an overlapping run since the listing.
                logger.debug("File %s already removed", path)
                continue
            except StorageError as exc:
                result.file_failures.append(FileFailure(path, str(exc)))
                logger.error("Error processing file %s: %s", path, exc)
                continue
            result.files.append(SweptFile(path, size))
            logger.info("%s: %s (%s)", "Would delete" if result.dry_run else "Deleted", path, format_bytes(size))

        if not result.dry_run:
            if self._prune(directory, result):
                self._prune_parents(directory, result)

    def _is_empty(self, directory: str) -> bool:
        return not self.storage.list_files_recursive(directory) and not self.storage.list_directories(directory)

    def _prune(self, directory: str, result: SweepResult) -> bool:
        """Remove ``directory`` and its empty subdirectories, deepest first."""

        try:
            for child in self.storage.list_directories(directory):
                self._prune(child, result)
            if not self._is_empty(directory):
                return False
            self.storage.delete_directory(directory)
        except StorageError as exc:
            logger.debug("Leaving directory %s in place: %s", directory, exc)
            return False
        result.removed_directories.append(directory)
        logger.info("Deleted empty directory: %s", directory)
        return True

    def _prune_parents(self, directory: str, result: SweepResult) -> None:
        parent = parent_path(directory)
        while is_strictly_inside(parent, self.tmp_prefix):
            try:
                if not self._is_empty(parent):
                    return
                self.storage.delete_directory(parent)
            except StorageError as exc:
                logger.debug("Leaving directory %s in place: %s", parent, exc)
                return
            result.removed_directories.append(parent)
            logger.info("Deleted empty directory: %s", parent)
            parent = parent_path(parent)
