from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class StoredFile:
    path: str
    folder: str
    original_name: str
    size_bytes: int
    mime_type: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def dimensions(self) -> Optional[Dict[str, int]]:
        if self.width is None or self.height is None:
            return None
        return {"width": self.width, "height": self.height}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "folder": self.folder,
            "original_name": self.original_name,
            "size": self.size_bytes,
            "mime_type": self.mime_type,
            "dimensions": self.dimensions,
        }
