from __future__ import annotations

from pathlib import Path


class CacheError(Exception):
    """Base class for every error raised by filestash."""


class InvalidArgumentError(CacheError, ValueError):
    pass


class InvalidKeyError(InvalidArgumentError):
    pass


class NonSerializableValueError(InvalidArgumentError):
    def __init__(self, key: str, type_name: str) -> None:
        super().__init__(f'Cache key "{key}" has non-serializable {type_name} value.')
        self.key = key
        self.type_name = type_name


class CacheDirectoryNotWritableError(CacheError):
    def __init__(self, directory: Path) -> None:
        super().__init__(f"Cache directory is not writable ({directory})")
        self.directory = directory


class EntryFormatError(CacheError):
    """An entry file exists but does not hold a valid entry."""


class EnvelopeDecodeError(CacheError):
    """A payload looked like an envelope but could not be decoded."""
