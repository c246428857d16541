from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

APP_DIR = Path(__file__).resolve().parent.parent
PROJECT_ROOT = APP_DIR.parent
STORAGE_ROOT = PROJECT_ROOT / "storage"

# Upload limits (in bytes)
MAX_FILE_BYTES = 10 * 1024 * 1024
MAX_IMAGE_BYTES = 5 * 1024 * 1024


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="APP_", env_file=".env", extra="ignore")

    app_name: str = "Orphaned Upload Sweeper"
    log_level: str = "INFO"

    storage_backend: Literal["local", "s3"] = "local"
    storage_root: Path = Field(default_factory=lambda: STORAGE_ROOT)
    s3_bucket: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    s3_region: Optional[str] = None
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None

    tmp_prefix: str = "tmp"
    retention_days: int = Field(default=1, ge=0)
    cleanup_enabled: bool = True
    cleanup_time: str = Field(default="02:00", pattern=r"^([01]\d|2[0-3]):[0-5]\d$")

    max_file_bytes: int = MAX_FILE_BYTES
    max_image_bytes: int = MAX_IMAGE_BYTES
    file_extensions: List[str] = Field(default_factory=lambda: ["pdf", "docx", "pptx", "xlsx", "zip", "rar"])
    image_extensions: List[str] = Field(default_factory=lambda: ["jpg", "jpeg", "png", "gif", "webp"])

    def ensure_directories(self) -> None:
        if self.storage_backend == "local":
            (self.storage_root / self.tmp_prefix).mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    return Settings()
