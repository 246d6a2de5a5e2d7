"""
Value objects shared across the credit kernel (``credit_kernel.domain.values``).

Responsibility
--------------
Small immutable types passed into every service call: the acting party,
the qualification tiers, and the cancellation handle used by the
allocation sweep.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  No imports from ``db/``,
``services/``, ``selectors/``, or outer layers.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum


class ActorRole(str, Enum):
    """Roles supplied by the external auth layer."""

    POC = "poc"
    ADMIN = "admin"


class Qualification(str, Enum):
    """Qualification tiers a student may claim under an umbrella."""

    CERTIFICATE = "certificate"
    DIPLOMA = "diploma"
    PG_DIPLOMA = "pg diploma"

    @classmethod
    def parse(cls, value: Qualification | str) -> Qualification:
        """Accept an enum member or its value, case- and separator-insensitive."""
        if isinstance(value, cls):
            return value
        normalized = " ".join(str(value).replace("_", " ").split()).lower()
        return cls(normalized)


@dataclass(frozen=True)
class Actor:
    """Who is acting.  The core records identity; it never authenticates it."""

    role: ActorRole
    identifier: str

    def __post_init__(self) -> None:
        if not isinstance(self.role, ActorRole):
            object.__setattr__(self, "role", ActorRole(self.role))
        if not self.identifier:
            raise ValueError("Actor identifier must not be empty")

    @classmethod
    def poc(cls, identifier: str) -> Actor:
        return cls(role=ActorRole.POC, identifier=identifier)

    @classmethod
    def admin(cls, identifier: str) -> Actor:
        return cls(role=ActorRole.ADMIN, identifier=identifier)


class CancellationToken:
    """
    Cooperative cancellation handle for an in-flight allocation sweep.

    The allocator checks ``cancelled`` before each reservation.  Once the
    claim is persisted in ``pending`` the token has no further effect.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
