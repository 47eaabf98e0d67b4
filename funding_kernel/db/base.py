"""
funding_kernel.db.base -- Declarative base and column types shared by all models.

Responsibility:
    Define the one DeclarativeBase every model maps onto, the portable UUID
    and UTC datetime column types, and the TrackedBase audit columns.

Architecture position:
    Kernel > DB. Lowest import target in the kernel; imports nothing from
    models, services, selectors or domain.

Invariants enforced:
    - Primary keys are uuid4 values stored as 36-character strings.
    - Money is an integer count of minor units (BigInteger); never float.
    - FX rates are Decimal mapped to Numeric(38, 18).
    - Datetimes are aware UTC on the way in and on the way out, including on
      SQLite, which stores them naive.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID stored as String(36) so SQLite and PostgreSQL share one schema."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class UTCDateTime(TypeDecorator):
    """
    Aware datetime normalized to UTC.

    Naive values are rejected on write; naive values read back from SQLite
    are tagged UTC so that comparisons with ``clock.now()`` never mix the two.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


class Base(DeclarativeBase):
    """Every mapped class gets a uuid4 ``id`` and the shared type map."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 18),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Audit columns for every business row. On ledger rows ``updated_at`` never
    moves past ``created_at`` except for the one-time refund cross-link.

    ``created_by_id`` is NULL for rows written by the recurring charge run.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[PyUUID | None] = mapped_column(UUIDString(), nullable=True)


UUID = PyUUID
