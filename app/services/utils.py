from __future__ import annotations

import re
import secrets
import string
from pathlib import PurePosixPath

_slug_strip_re = re.compile(r"[^a-z0-9]+")
_SUFFIX_ALPHABET = string.ascii_letters + string.digits


def slugify(value: str) -> str:
    """Return a lowercase, dash separated slug of ``value``."""
    return _slug_strip_re.sub("-", value.lower()).strip("-")


def random_suffix(length: int = 5) -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(length))


def storage_filename(original: str) -> str:
    """Build the stored name for an upload: ``<slug>-<random>.<ext>``."""
    name = PurePosixPath(original.replace("\\", "/")).name
    stem, dot, extension = name.rpartition(".")
    if not dot:
        stem, extension = name, ""
    slug = slugify(f"{stem or 'file'}-{random_suffix()}")
    extension = extension.lower()
    return f"{slug}.{extension}" if extension else slug


def file_extension(filename: str) -> str:
    _, dot, extension = PurePosixPath(filename).name.rpartition(".")
    return extension.lower() if dot else ""
