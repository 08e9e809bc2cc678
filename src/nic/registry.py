"""Name to implementation registries.

Registration is explicit: every backend is bound once at process start and
nothing registers itself on import. A duplicate name is an error rather
than a silent overwrite.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Generic, TypeVar

from .errors import AlreadyRegisteredError, NotRegisteredError

T = TypeVar("T")


class ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class Registry(Generic[T]):
    """Thread-safe map of names to implementations.

    Args:
        kind: Label used in error messages ("provider", "DNS provider").
    """

    def __init__(self, kind: str = "provider") -> None:
        self.kind = kind
        self._items: dict[str, T] = {}
        self._lock = ReadWriteLock()

    def register(self, name: str, item: T) -> None:
        """Bind name to item.

        Raises:
            ValueError: If name is empty.
            AlreadyRegisteredError: If name is already bound.
        """
        if not name:
            raise ValueError(f"{self.kind} name cannot be empty")
        with self._lock.write():
            if name in self._items:
                raise AlreadyRegisteredError(name, self.kind)
            self._items[name] = item

    def get(self, name: str) -> T:
        """Return the implementation bound to name.

        Raises:
            NotRegisteredError: If nothing is bound to name.
        """
        with self._lock.read():
            try:
                return self._items[name]
            except KeyError:
                raise NotRegisteredError(name, self.kind, list(self._items)) from None

    def list(self) -> list[str]:
        """Return all registered names, in no particular order."""
        with self._lock.read():
            return list(self._items)

    def __contains__(self, name: object) -> bool:
        with self._lock.read():
            return name in self._items
