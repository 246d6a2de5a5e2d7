"""
Tests for ResourceLockRegistry and LockScope.
"""

import threading

import pytest

from credit_kernel.exceptions import ContentionError
from credit_kernel.services.locks import (
    ResourceLockRegistry,
    claim_key,
    course_key,
    student_key,
)


class TestKeys:

    def test_key_formats(self):
        assert course_key("c1") == "course:c1"
        assert claim_key("k1") == "claim:k1"
        assert student_key("S-1") == "student:S-1"


class TestRegistry:

    def test_acquire_and_release(self):
        registry = ResourceLockRegistry(timeout_seconds=0.5)
        registry.acquire("course:1")
        assert registry.is_locked("course:1")
        registry.release("course:1")
        assert not registry.is_locked("course:1")

    def test_timeout_raises_contention(self, captured_logs):
        registry = ResourceLockRegistry(timeout_seconds=0.1)
        holder_ready = threading.Event()
        done = threading.Event()

        def hold():
            registry.acquire("course:1")
            holder_ready.set()
            done.wait(5)
            registry.release("course:1")

        thread = threading.Thread(target=hold)
        thread.start()
        holder_ready.wait(5)
        try:
            with pytest.raises(ContentionError) as exc_info:
                registry.acquire("course:1")
        finally:
            done.set()
            thread.join()

        assert exc_info.value.resource_key == "course:1"
        assert exc_info.value.retryable is True
        assert any(r["message"] == "lock_contention" for r in captured_logs())

    def test_release_unheld_key(self):
        with pytest.raises(RuntimeError):
            ResourceLockRegistry().release("course:nope")

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValueError):
            ResourceLockRegistry(timeout_seconds=0)


class TestLockScope:

    def test_reentrant_within_scope(self):
        registry = ResourceLockRegistry(timeout_seconds=0.1)
        with registry.scope() as scope:
            scope.acquire("course:1")
            scope.acquire("course:1", "claim:9")
            # Held keys keep acquisition order; only claim:9 was new the second time.
            assert scope.held == ("course:1", "claim:9")

    def test_release_all_on_exit(self):
        registry = ResourceLockRegistry(timeout_seconds=0.1)
        with registry.scope() as scope:
            scope.acquire_all(["course:2", "course:1"])
            assert registry.is_locked("course:1")
        assert not registry.is_locked("course:1")
        assert not registry.is_locked("course:2")

    def test_released_on_error(self):
        registry = ResourceLockRegistry(timeout_seconds=0.1)
        with pytest.raises(RuntimeError):
            with registry.scope() as scope:
                scope.acquire("claim:1")
                raise RuntimeError("boom")
        assert not registry.is_locked("claim:1")

    def test_second_scope_waits_for_first(self):
        registry = ResourceLockRegistry(timeout_seconds=0.1)
        with registry.scope() as first:
            first.acquire("course:1")
            errors = []

            def contend():
                try:
                    with registry.scope() as second:
                        second.acquire("course:1")
                except ContentionError as exc:
                    errors.append(exc)

            thread = threading.Thread(target=contend)
            thread.start()
            thread.join()

        assert len(errors) == 1
        with registry.scope() as third:
            third.acquire("course:1")

    def test_scope_bound_to_owner_thread(self):
        registry = ResourceLockRegistry(timeout_seconds=0.1)
        scope = registry.scope()
        errors = []

        def misuse():
            try:
                scope.acquire("course:1")
            except RuntimeError as exc:
                errors.append(exc)

        thread = threading.Thread(target=misuse)
        thread.start()
        thread.join()
        assert len(errors) == 1
