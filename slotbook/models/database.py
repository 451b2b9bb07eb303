"""
Database Models

SQLAlchemy ORM models for the booking ledger and the deferred action queue.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    DateTime, Float, Index, Integer, String, Text, UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow_naive() -> datetime:
    """Current UTC time without tzinfo, the storage convention for timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class ActionKind(str, Enum):
    """Kinds of deferred actions."""
    REMINDER = "reminder"
    FEEDBACK_REQUEST = "feedback_request"


class Appointment(Base):
    """
    Appointment model.

    One confirmed booking of a provider's slot. The (provider, date, slot)
    unique constraint is what prevents double-booking.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        UniqueConstraint(
            "provider_name", "date", "slot",
            name="uq_appointment_provider_date_slot",
        ),
        Index("idx_appointment_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_name: Mapped[str] = mapped_column(String(100), nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    slot: Mapped[str] = mapped_column(String(5), nullable=False)
    services: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=_utcnow_naive,
        nullable=False
    )
    calendar_event_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    feedback_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    @property
    def slot_key(self) -> str:
        """Date and slot joined, e.g. '2026-10-20 09:00'."""
        return f"{self.date} {self.slot}"

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, provider='{self.provider_name}', "
            f"date={self.date}, slot={self.slot}, user_id='{self.user_id}')>"
        )


class ScheduledAction(Base):
    """
    Scheduled Action model.

    A persisted, time-triggered side effect for an appointment. At most one
    action of each kind exists per appointment.
    """

    __tablename__ = "scheduled_actions"
    __table_args__ = (
        UniqueConstraint(
            "appointment_id", "kind",
            name="uq_scheduled_action_appointment_kind",
        ),
        Index("idx_scheduled_action_fire_at", "fire_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[ActionKind] = mapped_column(
        SQLEnum(
            ActionKind,
            native_enum=False,
            length=32,
            values_callable=lambda kinds: [k.value for k in kinds],
        ),
        nullable=False
    )
    fire_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    appointment_id: Mapped[int] = mapped_column(Integer, nullable=False)
    appointment_slot_key: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ScheduledAction(id={self.id}, kind={self.kind.value}, "
            f"appointment_id={self.appointment_id}, fire_at={self.fire_at})>"
        )
