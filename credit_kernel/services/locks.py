"""
Resource locks -- bounded-wait mutual exclusion per course, claim, and student.

Responsibility:
    ``ResourceLockRegistry`` hands out one mutex per resource key
    (``course:<id>``, ``claim:<id>``, ``student:<id>``).  ``LockScope``
    is what a unit of work holds: it acquires keys re-entrantly, in sorted
    order when several are requested together, and releases everything in
    reverse order when the unit of work ends.

Architecture position:
    Kernel > Services.  Services accept an optional LockScope and acquire
    the keys they touch; the orchestrator opens the scope before the
    transaction begins and closes it after commit or rollback, so a second
    writer always sees the first writer's committed state.

Invariants enforced:
    - No acquisition waits longer than the configured timeout; on timeout
      the caller gets a retryable ContentionError.
    - A scope never waits on a key it already holds.

Failure modes:
    - ContentionError when a key stays held past the timeout.
"""

from __future__ import annotations

import threading
import time
from typing import Iterable

from credit_kernel.exceptions import ContentionError
from credit_kernel.logging_config import get_logger

logger = get_logger("services.locks")

DEFAULT_LOCK_TIMEOUT_SECONDS = 5.0


def course_key(course_id) -> str:
    return f"course:{course_id}"


def claim_key(claim_id) -> str:
    return f"claim:{claim_id}"


def student_key(student_id) -> str:
    return f"student:{student_id}"


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class ResourceLockRegistry:
    """
    Process-wide registry of keyed mutexes.

    Entries are reference-counted and dropped once no scope holds or waits
    on them, so the registry does not grow with the number of resources
    ever touched.
    """

    def __init__(self, timeout_seconds: float = DEFAULT_LOCK_TIMEOUT_SECONDS):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self.timeout_seconds = timeout_seconds
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def acquire(self, key: str, timeout: float | None = None) -> None:
        """
        Acquire ``key`` or raise ContentionError after ``timeout`` seconds.
        """
        wait = self.timeout_seconds if timeout is None else timeout
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1

        started = time.monotonic()
        if entry.lock.acquire(timeout=wait):
            return

        self._forget(key, entry)
        logger.warning(
            "lock_contention",
            extra={
                "resource_key": key,
                "timeout_seconds": wait,
                "waited_ms": round((time.monotonic() - started) * 1000, 2),
            },
        )
        raise ContentionError(resource_key=key, timeout_seconds=wait)

    def release(self, key: str) -> None:
        with self._guard:
            entry = self._entries.get(key)
        if entry is None:
            raise RuntimeError(f"Lock {key} is not held")
        entry.lock.release()
        self._forget(key, entry)

    def _forget(self, key: str, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    def is_locked(self, key: str) -> bool:
        with self._guard:
            entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    def scope(self, timeout: float | None = None) -> LockScope:
        return LockScope(self, timeout)


class LockScope:
    """
    The set of locks held by one unit of work.

    Usage::

        with registry.scope() as locks:
            locks.acquire(course_key(course_id))
            ...  # transaction runs and commits here
        # every key released, newest first
    """

    def __init__(self, registry: ResourceLockRegistry, timeout: float | None = None):
        self._registry = registry
        self._timeout = timeout
        self._held: list[str] = []
        self._owner = threading.get_ident()

    def acquire(self, *keys: str) -> None:
        """
        Acquire every key not already held, in sorted order.

        Keys acquired before a ContentionError stay held until the scope
        closes.
        """
        self.acquire_all(keys)

    def acquire_all(self, keys: Iterable[str]) -> None:
        if threading.get_ident() != self._owner:
            raise RuntimeError("LockScope used from a thread that does not own it")
        for key in sorted(set(keys) - set(self._held)):
            self._registry.acquire(key, self._timeout)
            self._held.append(key)

    def holds(self, key: str) -> bool:
        return key in self._held

    @property
    def held(self) -> tuple[str, ...]:
        return tuple(self._held)

    def release_all(self) -> None:
        while self._held:
            self._registry.release(self._held.pop())

    def __enter__(self) -> LockScope:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release_all()
