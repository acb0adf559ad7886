from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Protocol

from filestash.errors import InvalidKeyError

ENTRY_SUFFIX = ".cache"


class PathResolver(Protocol):
    def path_for(self, key: str, create_dirs: bool = False) -> Path: ...


class HashedPathResolver:
    """Spread keys over two levels of hex-named subdirectories."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def path_for(self, key: str, create_dirs: bool = False) -> Path:
        if not isinstance(key, str) or not key:
            raise InvalidKeyError(f"Cache key must be a non-empty string, got {key!r}")
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        directory = self.root / digest[:2] / digest[2:4]
        if create_dirs:
            directory.mkdir(parents=True, exist_ok=True)
        return directory / f"{digest[4:]}{ENTRY_SUFFIX}"
