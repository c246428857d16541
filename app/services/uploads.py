from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Iterable, Optional

from app.models import StoredFile
from app.services.utils import storage_filename
from orphan_sweeper import ObjectStorage
from orphan_sweeper.exceptions import StorageError
from orphan_sweeper.utils import dated_folder

logger = logging.getLogger(__name__)


class UploadService:
    """Stores uploads under the dated temporary prefix and promotes them later.

    Files that are never promoted with :meth:`move_to_folder` are left for the
    retention sweeper.
    """

    def __init__(self, storage: ObjectStorage, tmp_prefix: str = "tmp") -> None:
        self.storage = storage
        self.tmp_prefix = tmp_prefix.strip("/")

    def temp_folder(self, now: Optional[datetime] = None) -> str:
        return dated_folder(self.tmp_prefix, now or datetime.now(timezone.utc))

    def store(
        self,
        filename: str,
        content: bytes,
        folder: Optional[str] = None,
        mime_type: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> StoredFile:
        target_folder = (folder or self.temp_folder(now)).strip("/")
        path = f"{target_folder}/{storage_filename(filename or 'upload')}"
        self.storage.put(path, content)
        logger.info("Stored upload %s (%d bytes)", path, len(content))
        return StoredFile(
            path=path,
            folder=target_folder,
            original_name=filename,
            size_bytes=len(content),
            mime_type=mime_type,
        )

    def move_to_folder(self, path: str, folder: str) -> str:
        if not folder.strip("/"):
            raise ValueError("No target folder specified")
        if not self.storage.exists(path):
            raise FileNotFoundError(path)
        new_path = f"{folder.strip('/')}/{PurePosixPath(path).name}"
        if new_path == path.strip("/"):
            return new_path
        self.storage.move(path, new_path)
        logger.info("Moved %s to %s", path, new_path)
        return new_path

    def delete_files(self, paths: Iterable[Optional[str]]) -> int:
        deleted = 0
        for path in paths:
            if not path:
                continue
            try:
                if not self.storage.exists(path):
                    continue
                self.storage.delete_file(path)
            except StorageError:
                logger.exception("Failed to delete %s", path)
                continue
            deleted += 1
        return deleted
