from __future__ import annotations

from typing import Optional

from app.core.config import Settings, get_settings
from app.services.uploads import UploadService
from orphan_sweeper import LocalStorage, ObjectStorage, RetentionSweeper, S3Storage
from orphan_sweeper.exceptions import ConfigurationError

_storage: Optional[ObjectStorage] = None


def build_storage(settings: Settings) -> ObjectStorage:
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise ConfigurationError("APP_S3_BUCKET is required when APP_STORAGE_BACKEND=s3")
        return S3Storage.from_settings(
            bucket=settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
        )
    return LocalStorage(settings.storage_root)


def set_storage(storage: ObjectStorage) -> None:
    global _storage
    _storage = storage


def get_storage() -> ObjectStorage:
    if _storage is None:
        raise RuntimeError("Storage not initialized")
    return _storage


def get_upload_service() -> UploadService:
    return UploadService(get_storage(), tmp_prefix=get_settings().tmp_prefix)


def get_sweeper() -> RetentionSweeper:
    return RetentionSweeper(get_storage(), tmp_prefix=get_settings().tmp_prefix)
