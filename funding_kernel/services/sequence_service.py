"""
SequenceService -- gap-tolerant, strictly increasing ledger sequence numbers.

Responsibility:
    Hands out ``Transaction.seq`` values. Within a double entry the DEBIT
    row receives its number before the CREDIT row, so ordering a group by
    ``seq`` reproduces insertion order on every backend.

Architecture position:
    Kernel > Services. Used only by LedgerService.

Invariants enforced:
    - The counter row is read under FOR UPDATE and is the only source of the
      next value; nothing derives seq from MAX(seq).
    - Values are allocated in the caller's transaction, so a rolled back
      double entry leaves a gap rather than a duplicate.

Failure modes:
    - IntegrityError from two writers creating the same counter row is
      absorbed by a savepoint and a locked re-read.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from funding_kernel.db.base import Base
from funding_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One row per named counter."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Allocates sequence values inside the caller's transaction; never commits.

    Usage:
        seq = SequenceService(session).next_value(SequenceService.TRANSACTION)
    """

    TRANSACTION = "transaction"

    def __init__(self, session: Session):
        self._session = session

    def _lock(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter | None:
        """Insert the counter at zero; None if a concurrent writer won."""
        savepoint = self._session.begin_nested()
        counter = SequenceCounter(name=name, current_value=0)
        self._session.add(counter)
        try:
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_created_concurrently", extra={"sequence_name": name})
            return None
        savepoint.commit()
        return counter

    def next_value(self, name: str) -> int:
        """Increment the named counter and return the new value (first value is 1)."""
        counter = self._lock(name) or self._create(name) or self._lock(name)
        if counter is None:
            raise RuntimeError(f"Sequence counter {name!r} could not be created")
        counter.current_value += 1
        self._session.flush()
        return counter.current_value
