"""
Per-umbrella certificate numbering backed by locked counter rows.

``next_value`` reads the named counter with ``SELECT ... FOR UPDATE``, so two
finalizations for the same umbrella serialize on that row and never receive
the same number.  The increment becomes visible when the caller commits; a
rollback gives the number back.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from credit_kernel.logging_config import get_logger
from credit_kernel.models.sequence import SequenceCounter
from credit_kernel.services.base import BaseService

logger = get_logger("services.sequence")


def certificate_sequence_name(umbrella_key: str) -> str:
    return f"certificate:{umbrella_key}"


class SequenceService(BaseService[SequenceCounter]):
    """Named, strictly increasing counters.  Flushes only."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _counter(self, name: str, *, lock: bool) -> SequenceCounter | None:
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def _create_counter(self, name: str) -> SequenceCounter:
        """Insert a fresh counter at 0, or lock the one a concurrent writer created."""
        savepoint = self.session.begin_nested()
        try:
            counter = SequenceCounter(name=name, current_value=0)
            self.session.add(counter)
            self.session.flush()
        except IntegrityError:
            savepoint.rollback()
        else:
            savepoint.commit()
            return counter

        logger.debug("sequence_counter_race", extra={"sequence_name": name})
        counter = self._counter(name, lock=True)
        if counter is None:
            raise RuntimeError(f"sequence counter {name!r} vanished after insert race")
        return counter

    def next_value(self, sequence_name: str) -> int:
        """Increment the named counter and return the new value (first call gives 1)."""
        counter = self._counter(sequence_name, lock=True)
        if counter is None:
            counter = self._create_counter(sequence_name)

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self._counter(sequence_name, lock=False)
        return counter.current_value if counter is not None else None
