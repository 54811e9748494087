"""Appointment model definitions."""

from sqlalchemy import Column, Date, DateTime, Index, Integer, String, text

from curabot.database import Base, utcnow

ACTIVE_SLOT_PREDICATE = text("status != 'cancelled'")


class Appointment(Base):
    """Represents a booked slot.

    Patient, doctor and schedule are referenced by id only; the record is
    never deleted, cancellation is a status change.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            "uq_appointments_active_slot",
            "doctor_id",
            "date",
            "time",
            unique=True,
            sqlite_where=ACTIVE_SLOT_PREDICATE,
            postgresql_where=ACTIVE_SLOT_PREDICATE,
        ),
    )

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, nullable=False, index=True)
    doctor_id = Column(Integer, nullable=False, index=True)
    schedule_id = Column(Integer, nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)
    status = Column(String, nullable=False, default='pending')  # pending/confirmed/cancelled/completed
    chat_session_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
