"""Appointment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from wellness.database import Base


class AppointmentRecord(Base):
    """Persisted counseling appointment."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    counselor_id = Column(Integer, ForeignKey("counselors.id"), nullable=False)
    student_id = Column(Integer, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default="SCHEDULED")
    notes = Column(Text)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    # Two live appointments for one counselor can never share a start time,
    # even when writers bypass the in-process lock.
    __table_args__ = (
        Index(
            "uq_appointments_counselor_start_active",
            counselor_id,
            start_time,
            unique=True,
            sqlite_where=status != "CANCELLED",
            postgresql_where=status != "CANCELLED",
        ),
    )
