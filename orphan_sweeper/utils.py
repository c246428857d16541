"""Utility helpers for dated temporary folders and size reporting."""

from __future__ import annotations

import posixpath
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from typing import Optional, Tuple

from .exceptions import InvalidDirectoryDateError

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


@lru_cache(maxsize=None)
def _dated_pattern(tmp_prefix: str) -> "re.Pattern[str]":
    prefix = re.escape(tmp_prefix.strip("/"))
    return re.compile(rf"^({prefix}/(\d{{4}})/(\d{{2}})/(\d{{2}}))(?:/|$)")


def format_bytes(size: float, precision: int = 2) -> str:
    """Format a byte count using 1024 based units.

    The value is rounded half up and trailing zeros are dropped, so
    ``1048576`` becomes ``"1 MB"`` and ``1500`` becomes ``"1.46 KB"``.
    """

    value = Decimal(str(size)) if isinstance(size, float) else Decimal(size)
    index = 0
    while value >= 1024 and index < len(SIZE_UNITS) - 1:
        value /= 1024
        index += 1

    quantum = Decimal(1).scaleb(-precision)
    rounded = value.quantize(quantum, rounding=ROUND_HALF_UP).normalize()
    return f"{rounded:f} {SIZE_UNITS[index]}"


def match_dated_directory(path: str, tmp_prefix: str = "tmp") -> Optional[Tuple[str, str, str, str]]:
    """Return ``(dated_root, year, month, day)`` when ``path`` lives in a dated folder.

    The path must start with ``<tmp_prefix>/YYYY/MM/DD``; the groups are
    not validated as a calendar date here.
    """

    match = _dated_pattern(tmp_prefix).search(path.strip("/"))
    if not match:
        return None
    return match.group(1), match.group(2), match.group(3), match.group(4)


def parse_directory_date(year: str, month: str, day: str) -> date:
    try:
        return date(int(year), int(month), int(day))
    except ValueError as exc:
        raise InvalidDirectoryDateError(f"Invalid date {year}-{month}-{day}: {exc}") from exc


def dated_folder(tmp_prefix: str, moment: datetime | date) -> str:
    """Return the temporary folder uploads made on ``moment`` are written to."""

    return f"{tmp_prefix.strip('/')}/{moment:%Y/%m/%d}"


def parent_path(path: str) -> str:
    head, _, _ = path.strip("/").rpartition("/")
    return head


def is_strictly_inside(path: str, root: str) -> bool:
    path = posixpath.normpath(path.strip("/") or ".")
    return path.startswith(root.strip("/") + "/")
