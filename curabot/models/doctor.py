"""Doctor profile model definitions."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from curabot.database import Base, utcnow


class Doctor(Base):
    """Public profile of a user with the doctor role."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    name = Column(String, nullable=False)
    profile_pic = Column(String)
    speciality = Column(String, nullable=False)
    qualification = Column(String)
    overview = Column(Text, default='')
    expertise = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
