"""
Declarative base for the treasury tables.

Every model gets a uuid4 primary key stored as a 36-character string, so
the same schema runs on PostgreSQL and SQLite.  Python ``int`` columns map
to BigInteger: amounts and balances are whole units of the local currency
and are never floats.

AppendOnlyBase adds the creator columns shared by the append-only side
records (bank transfers, safe verifications).  Ledger transactions carry
their own recorded_at / recorded_by_id pair.

Nothing in this module imports models, services or selectors.
"""

from datetime import date, datetime
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """UUID persisted as its canonical dashed string."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        # Accepts UUID objects and already-formatted strings.
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    """Root of every treasury table."""

    type_annotation_map: ClassVar[dict] = {
        int: BigInteger,
        datetime: DateTime(timezone=True),
        date: Date,
        PyUUID: UUIDString(),
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class AppendOnlyBase(Base):
    """
    Abstract base for write-once side records.

    created_at comes from the database clock; created_by_id is the actor
    who performed the operation and is mandatory.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)


UUID = PyUUID
