"""Per-key exclusive locks for read-then-write circulation operations.

Keys are ``(scope, id)`` pairs. A ``hold`` over several keys always acquires
them in scope order (library, book, user) and then by id, so two
operations can never wait on each other in a cycle.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple

from circulation.errors import LockTimeoutError

logger = logging.getLogger(__name__)

LockKey = Tuple[str, str]

SCOPE_ORDER = {"library": 0, "book": 1, "user": 2}


def library_key(library_id: str) -> LockKey:
    return ("library", library_id)


def book_key(book_id: str) -> LockKey:
    return ("book", book_id)


def user_key(user_id: str) -> LockKey:
    return ("user", user_id)


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.refs = 0


class KeyedLocks:
    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._entries: Dict[LockKey, _Entry] = {}

    def _checkout(self, key: LockKey) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.refs += 1
            return entry

    def _checkin(self, key: LockKey) -> None:
        with self._guard:
            entry = self._entries[key]
            entry.refs -= 1
            if entry.refs == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, *keys: LockKey, timeout: float = None) -> Iterator[None]:
        """Hold every key for the duration of the block.

        Raises LockTimeoutError if the keys cannot all be taken within
        ``timeout`` seconds (the registry default when omitted).
        """
        timeout = self.timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        ordered = sorted(set(keys), key=lambda k: (SCOPE_ORDER[k[0]], k[1]))
        held: List[Tuple[LockKey, _Entry]] = []
        try:
            for key in ordered:
                entry = self._checkout(key)
                remaining = max(0.0, deadline - time.monotonic())
                if not entry.lock.acquire(timeout=remaining):
                    self._checkin(key)
                    logger.warning(f"Lock wait expired for {key[0]}:{key[1]}")
                    raise LockTimeoutError(f"{key[0]}:{key[1]}", timeout)
                held.append((key, entry))
            yield
        finally:
            for key, entry in reversed(held):
                entry.lock.release()
                self._checkin(key)

    def active_keys(self) -> List[LockKey]:
        """Keys currently held or waited on."""
        with self._guard:
            return list(self._entries)
