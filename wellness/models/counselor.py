"""Counselor model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from wellness.database import Base


class CounselorRecord(Base):
    """Counselor whose calendar appointments are booked against."""
    __tablename__ = "counselors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(100), unique=True, index=True)
    specialization = Column(String(100))
    is_active = Column(Boolean, default=True)
