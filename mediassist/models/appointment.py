from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Text, Index, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from datetime import datetime, timedelta
import enum

from ..core.database import Base

class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

# Statuses that hold a doctor's time for conflict purposes
OCCUPYING_STATUSES = frozenset({
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.CONFIRMED,
    AppointmentStatus.IN_PROGRESS,
})

ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED},
    AppointmentStatus.IN_PROGRESS: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}

class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_doctor_start", "doctor_id", "scheduled_start"),
    )

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)

    # Appointment details
    scheduled_start = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=True)  # NULL means the default length
    status = Column(SQLEnum(AppointmentStatus), nullable=False, default=AppointmentStatus.SCHEDULED)
    reason = Column(Text, nullable=True)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    cancelled_reason = Column(String(255), nullable=True)

    # Relationships
    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")

    def end_time(self, default_minutes: int) -> datetime:
        return self.scheduled_start + timedelta(minutes=self.duration_minutes or default_minutes)

    def __repr__(self):
        return f"<Appointment(id={self.id}, patient_id={self.patient_id}, doctor_id={self.doctor_id}, start='{self.scheduled_start}')>"

class DoctorDayLock(Base):
    """Row locked by every writer of one doctor's appointments on one date."""
    __tablename__ = "doctor_day_locks"

    doctor_id = Column(Integer, ForeignKey("doctors.id"), primary_key=True)
    day = Column(Date, primary_key=True)
    version = Column(Integer, nullable=False, default=0)
