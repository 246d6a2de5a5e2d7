"""
Module: credit_kernel.models.sequence
Responsibility: Named counter rows backing monotonic sequences (certificate
    numbers per umbrella).
Architecture position: Kernel > Models.  Written only by SequenceService.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from credit_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value.  Row-level locking
    in SequenceService keeps it monotonic under concurrency.
    """

    __tablename__ = "sequence_counters"

    # e.g. "certificate:cyber_security"
    name: Mapped[str] = mapped_column(String(150), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
