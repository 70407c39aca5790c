from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime

from ..models.appointment import AppointmentStatus

class TimeSlot(BaseModel):
    time: str
    available: bool
    reason: Optional[str] = None

class DaySlots(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str
    doctor_id: int = Field(..., alias="doctorID")
    doctor_name: str = Field(..., alias="doctorName")
    slots: List[TimeSlot]
    available_count: int = Field(..., alias="availableCount")
    total_slots: int = Field(..., alias="totalSlots")

class ReservationCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: int = Field(..., alias="patientID")
    slot_start: datetime = Field(..., alias="slotStart")
    duration_minutes: Optional[int] = Field(None, alias="durationMinutes", gt=0, le=24 * 60)
    reason: Optional[str] = Field(None, max_length=2000)

class ReservationStatusUpdate(BaseModel):
    status: AppointmentStatus
    reason: Optional[str] = Field(None, max_length=255)

class ReservationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reservation_id: int = Field(..., alias="reservationID")
    status: AppointmentStatus
    doctor_id: int = Field(..., alias="doctorID")
    patient_id: int = Field(..., alias="patientID")
    scheduled_start: datetime = Field(..., alias="scheduledStart")
    duration_minutes: Optional[int] = Field(None, alias="durationMinutes")
    reason: Optional[str] = None
    cancelled_reason: Optional[str] = Field(None, alias="cancelledReason")

    @classmethod
    def from_appointment(cls, appointment) -> "ReservationResponse":
        return cls(
            reservation_id=appointment.id,
            status=appointment.status,
            doctor_id=appointment.doctor_id,
            patient_id=appointment.patient_id,
            scheduled_start=appointment.scheduled_start,
            duration_minutes=appointment.duration_minutes,
            reason=appointment.reason,
            cancelled_reason=appointment.cancelled_reason,
        )
