"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session-handling contract for every write-side
    service.  Services persist through ``session.flush()`` and never call
    ``session.commit()`` or ``session.rollback()``.

Architecture position:
    Kernel > Services.  Every service in ``credit_kernel/services/`` that
    performs writes extends this class.

Failure modes:
    - A subclass that commits breaks the atomicity of multi-step units of
      work (decline = release all + terminal mark; approve = stamp +
      finalize).
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from credit_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only methods -- those belong in
          ``credit_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
