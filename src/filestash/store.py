from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from datetime import timedelta
import math
import os
from pathlib import Path
import re
import time
from typing import Any

from filestash import codec
from filestash.entry import NEVER_EXPIRES, CacheEntry, is_temp_file, read_entry, write_entry
from filestash.errors import (
    CacheDirectoryNotWritableError,
    EntryFormatError,
    EnvelopeDecodeError,
    InvalidArgumentError,
    NonSerializableValueError,
)
from filestash.hooks import InvalidationHook, NullInvalidationHook
from filestash.paths import HashedPathResolver, PathResolver
from filestash.util.logging import get_logger

LOG = get_logger(__name__)

REQUEST_TIME_ENV = "FILESTASH_REQUEST_TIME"
# Compiled-file caches only trust files older than their own start.
MTIME_BACKDATE_SECONDS = 10
DEFAULT_NAMESPACE_DIR = "@"

_NAMESPACE_RE = re.compile(r"[-+_.A-Za-z0-9]*")

Lifetime = int | float | timedelta | None


class FileStore:
    """One entry file per key below ``directory/namespace``."""

    def __init__(
        self,
        directory: Path | str,
        namespace: str = "",
        *,
        resolver: PathResolver | None = None,
        hook: InvalidationHook | None = None,
        clock: Callable[[], float] = time.time,
        request_time: float | None = None,
    ) -> None:
        if not _NAMESPACE_RE.fullmatch(namespace):
            raise InvalidArgumentError(
                f'Namespace "{namespace}" may only contain characters in [-+_.A-Za-z0-9]'
            )
        base = Path(directory)
        # The empty namespace gets its own directory so it never contains others.
        self.directory = base / (namespace or DEFAULT_NAMESPACE_DIR)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.resolver = resolver or HashedPathResolver(self.directory)
        self.hook = hook or NullInvalidationHook()
        self.clock = clock
        self.start_time = _start_time(request_time, clock)
        self._hook_supported = self.hook.is_supported()

    def fetch(self, ids: Iterable[str]) -> dict[str, Any]:
        now = self._now()
        payloads: dict[str, Any] = {}
        for key in ids:
            path = self.resolver.path_for(key)
            entry = self._load(path)
            if entry is None or entry.is_expired(now):
                continue
            payloads[key] = entry.payload

        values: dict[str, Any] = {}
        for key, payload in payloads.items():
            try:
                values[key] = codec.decode(payload)
            except EnvelopeDecodeError as exc:
                LOG.warning("Skipping undecodable value for %s: %s", key, exc)
        return values

    def have(self, key: str) -> bool:
        return bool(self.fetch([key]))

    def save(self, values: Mapping[str, Any], lifetime: Lifetime = None) -> bool:
        """Write every value; return False if any write failed.

        Keys whose value cannot be serialized are skipped while the rest of
        the batch is written, then the first such error is raised.
        """
        if lifetime:
            expires_at = self._now() + _lifetime_seconds(lifetime)
        else:
            expires_at = NEVER_EXPIRES
        mtime = self.start_time - MTIME_BACKDATE_SECONDS
        ok = True
        rejected: list[NonSerializableValueError] = []

        for key, value in values.items():
            try:
                payload = codec.encode(key, value)
            except NonSerializableValueError as exc:
                LOG.warning("%s", exc)
                rejected.append(exc)
                continue
            try:
                path = self.resolver.path_for(key, create_dirs=True)
                write_entry(path, CacheEntry(expires_at=expires_at, payload=payload), mtime)
            except OSError as exc:
                LOG.warning("Failed to write cache entry for %s: %s", key, exc)
                ok = False
                continue
            self._invalidate(path)

        if not ok and not os.access(self.directory, os.W_OK):
            raise CacheDirectoryNotWritableError(self.directory)
        if rejected:
            raise rejected[0]
        return ok

    def delete(self, key: str) -> bool:
        return self._unlink(self.resolver.path_for(key))

    def prune(self) -> bool:
        now = self._now()
        pruned = True
        removed = 0
        for path in self._entry_files():
            entry = self._load(path)
            if entry is None or not entry.is_expired(now):
                continue
            if self._unlink(path):
                removed += 1
            else:
                pruned = False
        LOG.info("Pruned %d expired entries from %s", removed, self.directory)
        return pruned

    def clear(self) -> bool:
        cleared = True
        for path in self._entry_files():
            cleared = self._unlink(path) and cleared
        return cleared

    def _now(self) -> int:
        return int(self.clock())

    def _load(self, path: Path) -> CacheEntry | None:
        try:
            return read_entry(path)
        except FileNotFoundError:
            return None
        except EntryFormatError as exc:
            LOG.debug("Ignoring malformed entry %s: %s", path, exc)
            return None
        except OSError as exc:
            LOG.warning("Cannot read cache entry %s: %s", path, exc)
            return None

    def _entry_files(self) -> Iterator[Path]:
        for dirpath, _dirnames, filenames in os.walk(self.directory):
            for name in sorted(filenames):
                path = Path(dirpath) / name
                if not is_temp_file(path):
                    yield path

    def _unlink(self, path: Path) -> bool:
        self._invalidate(path)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            LOG.warning("Failed to remove %s: %s", path, exc)
        return not path.exists()

    def _invalidate(self, path: Path) -> None:
        if not self._hook_supported:
            return
        try:
            self.hook.notify_invalidated(path)
        except Exception as exc:  # noqa: BLE001
            LOG.debug("Invalidation hook failed for %s: %s", path, exc)


def _start_time(request_time: float | None, clock: Callable[[], float]) -> int:
    if request_time is not None:
        return int(request_time)
    raw = os.environ.get(REQUEST_TIME_ENV)
    if raw:
        try:
            return int(float(raw))
        except ValueError:
            LOG.warning("Ignoring invalid %s=%r", REQUEST_TIME_ENV, raw)
    return int(clock())


def _lifetime_seconds(lifetime: int | float | timedelta) -> int:
    if isinstance(lifetime, timedelta):
        return math.ceil(lifetime.total_seconds())
    return math.ceil(lifetime)
