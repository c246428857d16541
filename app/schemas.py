from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    success: bool = True
    path: str
    folder: str
    original_name: str
    size: int
    mime_type: Optional[str] = None
    dimensions: Optional[Dict[str, int]] = None
    message: str


class FinalizeRequest(BaseModel):
    path: str
    folder: str = Field(min_length=1)


class FinalizeResponse(BaseModel):
    path: str


class DiscardRequest(BaseModel):
    paths: List[Optional[str]]


class DiscardResponse(BaseModel):
    deleted: int


class SweptFileStatus(BaseModel):
    path: str
    size_bytes: int
    size: str


class DirectoryFailureStatus(BaseModel):
    directory: str
    error: str


class FileFailureStatus(BaseModel):
    path: str
    error: str


class CleanupResponse(BaseModel):
    dry_run: bool
    cutoff: str
    file_count: int
    total_bytes: int
    total_size: str
    files: List[SweptFileStatus]
    removed_directories: List[str]
    skipped_directories: List[str]
    directory_failures: List[DirectoryFailureStatus]
    file_failures: List[FileFailureStatus]
    root_error: Optional[str] = None
    cancelled: bool
    ok: bool
