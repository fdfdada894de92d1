"""Reader/writer lock guarding a Knowledge Store index."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from rag_router.errors import RouterError, StoreError


class ReadWriteLock:
    """Many concurrent readers or a single exclusive writer.

    A writer waits for active readers to drain and blocks new readers while
    it waits, so a steady stream of queries cannot starve writes.

    If an exception that is not a `RouterError` escapes a write section, the
    protected state may be half-updated: the lock is marked poisoned and
    every later acquisition raises `StoreError`.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0
        self._poisoned = False

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._check_poison()
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
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._check_poison()
            self._writer = True
        try:
            yield
        except RouterError:
            raise
        except BaseException:
            self._poisoned = True
            raise
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()

    def _check_poison(self) -> None:
        if self._poisoned:
            self._cond.notify_all()
            raise StoreError("Store lock is poisoned by an earlier failed write")
