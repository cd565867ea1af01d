"""
Database Models

SQLAlchemy ORM models for the scheduling core: the procedure catalog and
provider bookings.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    DDL, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, Text,
    Enum as SQLEnum, event, text
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from agenda.core.scheduling.models import BookingStatus

# Exclusion constraint rejecting overlapping active bookings of a provider
NO_OVERLAP_CONSTRAINT = "bookings_no_overlap_per_provider"


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class ProcedureRecord(Base, TimestampMixin):
    """
    Procedure catalog entry.

    Reference data owned by the clinic settings screens; read-only here.
    """

    __tablename__ = "procedures"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_procedure_duration_positive"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    def __repr__(self) -> str:
        return f"<ProcedureRecord(id={self.id}, name='{self.name}', duration={self.duration_minutes})>"


class BookingRecord(Base, TimestampMixin):
    """
    Booking model.

    starts_at/ends_at are stored as UTC instants. ends_at is denormalized from
    duration_minutes so PostgreSQL can enforce non-overlap with a range
    exclusion constraint.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        Index("idx_booking_provider_start", "provider_id", "starts_at"),
        Index("idx_booking_patient", "patient_id"),
        CheckConstraint("duration_minutes > 0", name="ck_booking_duration_positive"),
        CheckConstraint("ends_at > starts_at", name="ck_booking_interval"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    patient_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False)
    # Legacy single-procedure column, first entry of `procedures`
    procedure_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(
            BookingStatus,
            name="booking_status",
            native_enum=False,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=BookingStatus.SCHEDULED,
        nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    procedures: Mapped[List["BookingProcedureRecord"]] = relationship(
        "BookingProcedureRecord",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingProcedureRecord.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<BookingRecord(id={self.id}, provider={self.provider_id}, "
            f"starts_at={self.starts_at}, status={self.status.value})>"
        )


class BookingProcedureRecord(Base):
    """Ordered procedure list of a booking."""

    __tablename__ = "booking_procedures"
    __table_args__ = (
        Index("idx_booking_procedure_booking", "booking_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    procedure_id: Mapped[str] = mapped_column(String(64), nullable=False)

    booking: Mapped["BookingRecord"] = relationship("BookingRecord", back_populates="procedures")


# PostgreSQL-only overlap guarantee. Other dialects rely on the
# transactional re-check in the booking store.
event.listen(
    BookingRecord.__table__,
    "after_create",
    DDL("CREATE EXTENSION IF NOT EXISTS btree_gist").execute_if(dialect="postgresql"),
)
event.listen(
    BookingRecord.__table__,
    "after_create",
    DDL(
        f"ALTER TABLE bookings ADD CONSTRAINT {NO_OVERLAP_CONSTRAINT} "
        "EXCLUDE USING gist ("
        "provider_id WITH =, "
        "tstzrange(starts_at, ends_at, '[)') WITH &&"
        f") WHERE (status <> '{BookingStatus.CANCELLED.value}')"
    ).execute_if(dialect="postgresql"),
)
