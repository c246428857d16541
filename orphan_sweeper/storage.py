"""Object storage backends used by the sweeper and the upload service.

Paths are posix style keys relative to the storage root (``tmp/2024/01/10/a.pdf``).
Directories are returned without a trailing slash.
"""

from __future__ import annotations

import abc
import os
import posixpath
import shutil
from pathlib import Path
from typing import Any, Iterator, List, Optional, Set, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import ObjectNotFoundError, StorageError


def _clean(path: str) -> str:
    return path.strip("/")


def _is_missing(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}


class ObjectStorage(abc.ABC):
    """Minimal object storage contract."""

    @abc.abstractmethod
    def list_directories(self, prefix: str) -> List[str]:
        """Return the immediate child directories of ``prefix``."""

    @abc.abstractmethod
    def list_directories_recursive(self, prefix: str) -> List[str]:
        """Return every descendant directory of ``prefix``."""

    @abc.abstractmethod
    def list_files_recursive(self, prefix: str) -> List[str]:
        """Return every file below ``prefix``."""

    @abc.abstractmethod
    def file_size(self, path: str) -> int:
        """Return the size in bytes, raising ``ObjectNotFoundError`` when the file is gone."""

    @abc.abstractmethod
    def delete_file(self, path: str) -> None:
        """Delete a file. Deleting a missing file is not an error."""

    @abc.abstractmethod
    def delete_directory(self, path: str) -> None:
        """Delete an empty directory, raising ``StorageError`` if it is not empty."""

    @abc.abstractmethod
    def put(self, path: str, content: bytes) -> None:
        ...

    @abc.abstractmethod
    def get(self, path: str) -> bytes:
        ...

    @abc.abstractmethod
    def exists(self, path: str) -> bool:
        ...

    @abc.abstractmethod
    def move(self, source: str, destination: str) -> None:
        ...


class LocalStorage(ObjectStorage):
    """Storage backed by a directory on the local filesystem.

    Symbolic links are never followed: listings do not descend into linked
    directories, a linked file is reported (and deleted) as the link itself,
    and deletes refuse paths that pass through a linked directory.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        relative = posixpath.normpath(_clean(path) or ".")
        if relative == ".." or relative.startswith("../"):
            raise StorageError(f"Path escapes storage root: {path}")
        return self.root if relative == "." else self.root / relative

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def _crosses_link(self, target: Path, include_target: bool = True) -> bool:
        current = target if include_target else target.parent
        while self.root in current.parents:
            if current.is_symlink():
                return True
            current = current.parent
        return False

    def _walk(self, base: Path) -> Iterator[Tuple[Path, List[str], List[str]]]:
        def _raise(exc: OSError) -> None:
            raise exc

        for dirpath, dirnames, filenames in os.walk(base, onerror=_raise, followlinks=False):
            current = Path(dirpath)
            dirnames[:] = sorted(name for name in dirnames if not (current / name).is_symlink())
            yield current, dirnames, filenames

    def _listable(self, prefix: str) -> Optional[Path]:
        base = self._resolve(prefix)
        if self._crosses_link(base) or not base.exists():
            return None
        if not base.is_dir():
            raise StorageError(f"Unable to list {prefix}: not a directory")
        return base

    def list_directories(self, prefix: str) -> List[str]:
        base = self._listable(prefix)
        if base is None:
            return []
        try:
            children = [item for item in base.iterdir() if item.is_dir() and not item.is_symlink()]
        except OSError as exc:
            raise StorageError(f"Unable to list {prefix}: {exc}") from exc
        return sorted(self._relative(item) for item in children)

    def list_directories_recursive(self, prefix: str) -> List[str]:
        base = self._listable(prefix)
        if base is None:
            return []
        try:
            return sorted(
                self._relative(current / name)
                for current, dirnames, _ in self._walk(base)
                for name in dirnames
            )
        except OSError as exc:
            raise StorageError(f"Unable to list {prefix}: {exc}") from exc

    def list_files_recursive(self, prefix: str) -> List[str]:
        base = self._listable(prefix)
        if base is None:
            return []
        try:
            return sorted(
                self._relative(current / name)
                for current, _, filenames in self._walk(base)
                for name in filenames
            )
        except OSError as exc:
            raise StorageError(f"Unable to list {prefix}: {exc}") from exc

    def file_size(self, path: str) -> int:
        try:
            return self._resolve(path).lstat().st_size
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(f"File not found: {path}") from exc
        except OSError as exc:
            raise StorageError(f"Unable to stat {path}: {exc}") from exc

    def delete_file(self, path: str) -> None:
        target = self._resolve(path)
        if self._crosses_link(target, include_target=False):
            raise StorageError(f"Refusing to delete {path} through a linked directory")
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Unable to delete {path}: {exc}") from exc

    def delete_directory(self, path: str) -> None:
        target = self._resolve(path)
        if target == self.root:
            raise StorageError("Refusing to delete the storage root")
        if self._crosses_link(target):
            raise StorageError(f"Refusing to delete {path} through a linked directory")
        try:
            target.rmdir()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"Unable to delete directory {path}: {exc}") from exc

    def put(self, path: str, content: bytes) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            raise StorageError(f"Unable to write {path}: {exc}") from exc

    def get(self, path: str) -> bytes:
        try:
            return self._resolve(path).read_bytes()
        except FileNotFoundError as exc:
            raise ObjectNotFoundError(f"File not found: {path}") from exc
        except OSError as exc:
            raise StorageError(f"Unable to read {path}: {exc}") from exc

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def move(self, source: str, destination: str) -> None:
        target = self._resolve(destination)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(self._resolve(source)), str(target))
        except OSError as exc:
            raise StorageError(f"Unable to move {source} to {destination}: {exc}") from exc


class S3Storage(ObjectStorage):
    """Storage backed by an S3 compatible bucket (AWS S3, MinIO).

    S3 has no real directories: a directory is a key prefix, optionally
    materialised by a zero byte ``prefix/`` marker object.
    """

    def __init__(self, client: Any, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_settings(
        cls,
        bucket: str,
        endpoint_url: Optional[str] = None,
        region_name: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
    ) -> "S3Storage":
        client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region_name,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        )
        return cls(client, bucket)

    def _pages(self, prefix: str, delimiter: Optional[str] = None) -> Iterator[dict]:
        kwargs = {"Bucket": self.bucket, "Prefix": _clean(prefix) + "/" if _clean(prefix) else ""}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            yield from paginator.paginate(**kwargs)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Unable to list {prefix}: {exc}") from exc

    def _keys(self, prefix: str) -> List[str]:
        return [item["Key"] for page in self._pages(prefix) for item in page.get("Contents", [])]

    def list_directories(self, prefix: str) -> List[str]:
        directories = [
            common["Prefix"].rstrip("/")
            for page in self._pages(prefix, delimiter="/")
            for common in page.get("CommonPrefixes", [])
        ]
        return sorted(directories)

    def list_directories_recursive(self, prefix: str) -> List[str]:
        base = _clean(prefix)
        found: Set[str] = set()
        for key in self._keys(prefix):
            parts = key.split("/")[:-1]
            for depth in range(1, len(parts) + 1):
                directory = "/".join(parts[:depth])
                if directory.startswith(base + "/"):
                    found.add(directory)
        return sorted(found)

    def list_files_recursive(self, prefix: str) -> List[str]:
        return sorted(key for key in self._keys(prefix) if not key.endswith("/"))

    def file_size(self, path: str) -> int:
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=_clean(path))
        except ClientError as exc:
            if _is_missing(exc):
                raise ObjectNotFoundError(f"File not found: {path}") from exc
            raise StorageError(f"Unable to stat {path}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Unable to stat {path}: {exc}") from exc
        return int(response["ContentLength"])

    def delete_file(self, path: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=_clean(path))
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Unable to delete {path}: {exc}") from exc

    def delete_directory(self, path: str) -> None:
        marker = _clean(path) + "/"
        remaining = [key for key in self._keys(path) if key != marker]
        if remaining:
            raise StorageError(f"Directory {path} is not empty")
        self.delete_file(marker)

    def put(self, path: str, content: bytes) -> None:
        try:
            self.client.put_object(Bucket=self.bucket, Key=_clean(path), Body=content)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Unable to write {path}: {exc}") from exc

    def get(self, path: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=_clean(path))
            return response["Body"].read()
        except ClientError as exc:
            if _is_missing(exc):
                raise ObjectNotFoundError(f"File not found: {path}") from exc
            raise StorageError(f"Unable to read {path}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Unable to read {path}: {exc}") from exc

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=_clean(path))
        except ClientError as exc:
            if _is_missing(exc):
                return False
            raise StorageError(f"Unable to check {path}: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Unable to check {path}: {exc}") from exc
        return True

    def move(self, source: str, destination: str) -> None:
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                Key=_clean(destination),
                CopySource={"Bucket": self.bucket, "Key": _clean(source)},
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Unable to move {source} to {destination}: {exc}") from exc
        self.delete_file(source)
