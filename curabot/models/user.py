"""User model definitions."""

from sqlalchemy import Column, DateTime, Integer, String

from curabot.database import Base, utcnow


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default='patient')  # patient/doctor/admin
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
