from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
import tempfile
from typing import Any

from filestash.errors import EntryFormatError

ENTRY_FORMAT = "filestash/1"
NEVER_EXPIRES = 2**63 - 1
TEMP_SUFFIX = ".tmp"
ENTRY_MODE = 0o666


@dataclass(frozen=True)
class CacheEntry:
    expires_at: int
    payload: Any

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at


def dump_entry(entry: CacheEntry) -> bytes:
    record = {
        "format": ENTRY_FORMAT,
        "expires_at": entry.expires_at,
        "payload": entry.payload,
    }
    return json.dumps(record, ensure_ascii=True, allow_nan=False).encode("utf-8")


def parse_entry(data: bytes) -> CacheEntry:
    try:
        record = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise EntryFormatError(f"Entry is not valid JSON: {exc}") from exc

    if not isinstance(record, dict) or record.get("format") != ENTRY_FORMAT:
        raise EntryFormatError("Entry is missing the format marker")
    expires_at = record.get("expires_at")
    if type(expires_at) is not int:
        raise EntryFormatError("Entry expiration is not an integer")
    if "payload" not in record:
        raise EntryFormatError("Entry has no payload")
    return CacheEntry(expires_at=expires_at, payload=record["payload"])


def read_entry(path: Path) -> CacheEntry:
    return parse_entry(path.read_bytes())


def is_temp_file(path: Path) -> bool:
    return path.name.startswith(".") and path.name.endswith(TEMP_SUFFIX)


def write_entry(path: Path, entry: CacheEntry, mtime: float) -> None:
    """Atomically replace ``path`` with ``entry`` and backdate it to ``mtime``."""
    data = dump_entry(entry)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=TEMP_SUFFIX
    )
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp, ENTRY_MODE & ~UMASK)
        os.utime(tmp, (mtime, mtime))
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def _read_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


# Read once at import; os.umask cannot be queried without setting it.
UMASK = _read_umask()
