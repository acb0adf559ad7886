"""File-backed key-value cache with per-entry expiration."""

from filestash.entry import NEVER_EXPIRES, CacheEntry
from filestash.errors import (
    CacheDirectoryNotWritableError,
    CacheError,
    EntryFormatError,
    EnvelopeDecodeError,
    InvalidArgumentError,
    InvalidKeyError,
    NonSerializableValueError,
)
from filestash.hooks import CallbackInvalidationHook, InvalidationHook, NullInvalidationHook
from filestash.paths import HashedPathResolver, PathResolver
from filestash.store import FileStore

__all__ = [
    "NEVER_EXPIRES",
    "CacheDirectoryNotWritableError",
    "CacheEntry",
    "CacheError",
    "CallbackInvalidationHook",
    "EntryFormatError",
    "EnvelopeDecodeError",
    "FileStore",
    "HashedPathResolver",
    "InvalidArgumentError",
    "InvalidKeyError",
    "InvalidationHook",
    "NonSerializableValueError",
    "NullInvalidationHook",
    "PathResolver",
]
