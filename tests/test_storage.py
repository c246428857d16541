from __future__ import annotations

import io
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

import pytest
from botocore.exceptions import ClientError

from orphan_sweeper import LocalStorage, ObjectNotFoundError, RetentionSweeper, S3Storage, StorageError


class FakePaginator:
    def __init__(self, objects: Dict[str, bytes]) -> None:
        self.objects = objects

    def paginate(self, Bucket: str, Prefix: str = "", Delimiter: Optional[str] = None):
        keys = sorted(key for key in self.objects if key.startswith(Prefix))
        if not Delimiter:
            yield {"Contents": [{"Key": key} for key in keys]}
            return
        contents, prefixes = [], []
        for key in keys:
            rest = key[len(Prefix):]
            if Delimiter in rest:
                common = Prefix + rest.split(Delimiter, 1)[0] + Delimiter
                if common not in prefixes:
                    prefixes.append(common)
            else:
                contents.append({"Key": key})
        yield {"Contents": contents, "CommonPrefixes": [{"Prefix": p} for p in prefixes]}


class FakeS3Client:
    """In-memory stand-in for the subset of the boto3 S3 client we use."""

    def __init__(self) -> None:
        self.objects: Dict[str, bytes] = {}

    def get_paginator(self, operation: str) -> FakePaginator:
        assert operation == "list_objects_v2"
        return FakePaginator(self.objects)

    def head_object(self, Bucket: str, Key: str) -> dict:
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {"ContentLength": len(self.objects[Key])}

    def delete_object(self, Bucket: str, Key: str) -> dict:
        self.objects.pop(Key, None)
        return {}

    def put_object(self, Bucket: str, Key: str, Body: bytes) -> dict:
        self.objects[Key] = Body
        return {}

    def get_object(self, Bucket: str, Key: str) -> dict:
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "Not Found"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}

    def copy_object(self, Bucket: str, Key: str, CopySource: dict) -> dict:
        self.objects[Key] = self.objects[CopySource["Key"]]
        return {}


def test_local_storage_listing(tmp_path: Path) -> None:
    storage = LocalStorage(tmp_path)
    storage.put("tmp/2024/01/01/a.txt", b"abc")
    storage.put("tmp/2024/01/01/sub/b.txt", b"de")
    storage.put("tmp/other/c.txt", b"f")

    assert storage.list_directories("tmp") == ["tmp/2024", "tmp/other"]
    assert storage.list_directories_recursive("tmp/2024") == [
        "tmp/2024/01",
        "tmp/2024/01/01",
        "tmp/2024/01/01/sub",
    ]
    assert storage.list_files_recursive("tmp/2024") == ["tmp/2024/01/01/a.txt", "tmp/2024/01/01/sub/b.txt"]
    assert storage.file_size("tmp/2024/01/01/a.txt") == 3
    assert storage.get("tmp/other/c.txt") == b"f"
    assert storage.list_files_recursive("missing") == []


def test_local_storage_deletes_are_idempotent(tmp_path: Path) -> None:
    storage = LocalStorage(tmp_path)
    storage.put("tmp/a/file.txt", b"x")

    storage.delete_file("tmp/a/file.txt")
    storage.delete_file("tmp/a/file.txt")
    storage.delete_directory("tmp/a")
    storage.delete_directory("tmp/a")

    assert not (tmp_path / "tmp/a").exists()


def test_local_storage_refuses_non_empty_directory_and_escapes(tmp_path: Path) -> None:
    storage = LocalStorage(tmp_path)
    storage.put("tmp/a/file.txt", b"x")

    with pytest.raises(StorageError):
        storage.delete_directory("tmp/a")
    with pytest.raises(StorageError):
        storage.file_size("../outside.txt")
    with pytest.raises(StorageError):
        storage.delete_directory("")


def test_local_storage_does_not_follow_links(tmp_path: Path) -> None:
    storage = LocalStorage(tmp_path)
    storage.put("documents/contract.pdf", b"keep")
    storage.put("tmp/2024/01/01/a.txt", b"x")
    (tmp_path / "tmp/2024/01/02").symlink_to(tmp_path / "documents", target_is_directory=True)
    (tmp_path / "tmp/2024/01/01/link.pdf").symlink_to(tmp_path / "documents/contract.pdf")

    assert storage.list_directories("tmp/2024/01") == ["tmp/2024/01/01"]
    assert storage.list_directories_recursive("tmp") == ["tmp/2024", "tmp/2024/01", "tmp/2024/01/01"]
    assert storage.list_files_recursive("tmp") == ["tmp/2024/01/01/a.txt", "tmp/2024/01/01/link.pdf"]
    assert storage.list_files_recursive("tmp/2024/01/02") == []

    with pytest.raises(StorageError):
        storage.delete_file("tmp/2024/01/02/contract.pdf")
    storage.delete_file("tmp/2024/01/01/link.pdf")

    assert storage.get("documents/contract.pdf") == b"keep"


def test_missing_file_size_raises_not_found(tmp_path: Path) -> None:
    with pytest.raises(ObjectNotFoundError):
        LocalStorage(tmp_path).file_size("tmp/gone.txt")
    with pytest.raises(ObjectNotFoundError):
        S3Storage(FakeS3Client(), "uploads").file_size("tmp/gone.txt")


def test_local_storage_move(tmp_path: Path) -> None:
    storage = LocalStorage(tmp_path)
    storage.put("tmp/2024/01/01/a.txt", b"x")

    storage.move("tmp/2024/01/01/a.txt", "documents/a.txt")

    assert storage.exists("documents/a.txt")
    assert not storage.exists("tmp/2024/01/01/a.txt")


def test_s3_storage_listing() -> None:
    client = FakeS3Client()
    storage = S3Storage(client, "uploads")
    storage.put("tmp/2024/01/01/a.txt", b"abc")
    storage.put("tmp/2024/01/01/sub/b.txt", b"de")
    storage.put("tmp/2024/02/", b"")

    assert storage.list_directories("tmp") == ["tmp/2024"]
    assert storage.list_directories("tmp/2024") == ["tmp/2024/01", "tmp/2024/02"]
    assert storage.list_directories_recursive("tmp/2024") == [
        "tmp/2024/01",
        "tmp/2024/01/01",
        "tmp/2024/01/01/sub",
        "tmp/2024/02",
    ]
    assert storage.list_files_recursive("tmp") == ["tmp/2024/01/01/a.txt", "tmp/2024/01/01/sub/b.txt"]
    assert storage.file_size("tmp/2024/01/01/a.txt") == 3
    assert storage.exists("tmp/2024/01/01/a.txt")
    assert not storage.exists("tmp/nope.txt")


def test_s3_storage_directory_delete_requires_empty_prefix() -> None:
    client = FakeS3Client()
    storage = S3Storage(client, "uploads")
    storage.put("tmp/2024/01/01/a.txt", b"abc")
    storage.put("tmp/2024/01/01/", b"")

    with pytest.raises(StorageError):
        storage.delete_directory("tmp/2024/01/01")

    storage.delete_file("tmp/2024/01/01/a.txt")
    storage.delete_directory("tmp/2024/01/01")

    assert client.objects == {}


def test_s3_storage_wraps_client_errors() -> None:
    storage = S3Storage(FakeS3Client(), "uploads")

    with pytest.raises(StorageError):
        storage.file_size("tmp/missing.txt")
    with pytest.raises(StorageError):
        storage.get("tmp/missing.txt")


def test_sweeper_runs_against_s3_storage() -> None:
    client = FakeS3Client()
    storage = S3Storage(client, "uploads")
    storage.put("tmp/2024/01/01/a.txt", b"abc")
    storage.put("tmp/2024/01/11/b.txt", b"de")
    storage.put("documents/keep.pdf", b"pdf")

    result = RetentionSweeper(storage).run(days=1, now=datetime(2024, 1, 12, tzinfo=timezone.utc))

    assert [item.path for item in result.files] == ["tmp/2024/01/01/a.txt"]
    assert sorted(client.objects) == ["documents/keep.pdf", "tmp/2024/01/11/b.txt"]
    assert result.removed_directories == ["tmp/2024/01/01"]
