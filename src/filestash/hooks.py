"""Notifications for an external cache of compiled entry files.

Some runtimes keep their own compiled copy of files they have loaded. The
store tells such a cache to forget a path whenever it rewrites or removes it.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Protocol


class InvalidationHook(Protocol):
    def is_supported(self) -> bool: ...

    def notify_invalidated(self, path: Path) -> None: ...


class NullInvalidationHook:
    def is_supported(self) -> bool:
        return False

    def notify_invalidated(self, path: Path) -> None:
        return None


class CallbackInvalidationHook:
    def __init__(self, callback: Callable[[Path], None]) -> None:
        self.callback = callback

    def is_supported(self) -> bool:
        return True

    def notify_invalidated(self, path: Path) -> None:
        self.callback(path)
