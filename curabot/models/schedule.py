"""Schedule model definitions.

A doctor owns exactly one schedule. The schedule holds date entries and
each date entry holds time slots whose labels are unique within that day.
"""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from curabot.database import Base, utcnow


class Schedule(Base):
    """A doctor's full set of bookable days."""
    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    dates = relationship(
        "ScheduleDate",
        back_populates="schedule",
        order_by="ScheduleDate.date",
        cascade="all, delete-orphan",
    )


class ScheduleDate(Base):
    """One calendar day inside a schedule."""
    __tablename__ = "schedule_dates"
    __table_args__ = (UniqueConstraint("schedule_id", "date", name="uq_schedule_dates_day"),)

    id = Column(Integer, primary_key=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)

    schedule = relationship("Schedule", back_populates="dates")
    slots = relationship(
        "TimeSlot",
        back_populates="date_entry",
        order_by="TimeSlot.label",
        cascade="all, delete-orphan",
    )


class TimeSlot(Base):
    """A single bookable time label on a day."""
    __tablename__ = "time_slots"
    __table_args__ = (UniqueConstraint("schedule_date_id", "label", name="uq_time_slots_label"),)

    id = Column(Integer, primary_key=True)
    schedule_date_id = Column(Integer, ForeignKey("schedule_dates.id"), nullable=False, index=True)
    label = Column(String(5), nullable=False)  # HH:MM
    is_booked = Column(Boolean, default=False, nullable=False)
    # Removed from the day's range while booked; deleted instead of freed on release.
    is_withdrawn = Column(Boolean, default=False, nullable=False)

    date_entry = relationship("ScheduleDate", back_populates="slots")
