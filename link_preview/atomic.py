from __future__ import annotations

import threading
from typing import Generic, TypeVar

T = TypeVar("T")


class AtomicOptional(Generic[T]):
    """A lock-guarded optional value that can be filled at most once.

    Readers either see ``None`` or a value that was fully constructed before
    it was stored; once set, the value never changes.
    """

    def __init__(self, lock: threading.Lock | None = None) -> None:
        self._lock = lock or threading.Lock()
        self._value: T | None = None

    def get(self) -> T | None:
        with self._lock:
            return self._value

    def set_if_absent(self, value: T) -> T:
        """Store ``value`` unless another thread won; return the stored value."""
        with self._lock:
            if self._value is None:
                self._value = value
            return self._value
