from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from datetime import date, datetime
import re

from ...api.deps import get_slot_scheduler, require_role
from ...core.database import get_db
from ...core.errors import AccessDenied, MalformedRequest
from ...core.security import Role
from ...models.appointment import Appointment, AppointmentStatus
from ...models.doctor import Doctor
from ...models.patient import Patient
from ...schemas.scheduling import (
    DaySlots, ReservationCreate, ReservationResponse,
    ReservationStatusUpdate, TimeSlot
)
from ...services.session_broker import IdentityClaim
from ...services.slot_scheduler import SlotScheduler

router = APIRouter(prefix="/doctors", tags=["Scheduling"])
reservations_router = APIRouter(prefix="/reservations", tags=["Scheduling"])

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

require_session = require_role([Role.PATIENT, Role.DOCTOR])

def parse_day(value: str) -> date:
    if not DATE_PATTERN.match(value):
        raise MalformedRequest("Invalid date format. Use YYYY-MM-DD")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise MalformedRequest("Invalid date format. Use YYYY-MM-DD")

def _own_doctor_id(db: Session, claim: IdentityClaim):
    return db.query(Doctor.id).filter(Doctor.user_id == claim.user_id).scalar()

def _own_patient_id(db: Session, claim: IdentityClaim):
    return db.query(Patient.id).filter(Patient.user_id == claim.user_id).scalar()

@router.get("/{doctor_id}/slots", response_model=DaySlots, response_model_exclude_none=True)
def get_doctor_slots(
    doctor_id: int,
    day: str = Query(..., alias="date", description="YYYY-MM-DD"),
    scheduler: SlotScheduler = Depends(get_slot_scheduler),
):
    """Slot grid for one doctor and date. Advisory; booking re-checks."""
    availability = scheduler.compute_availability(doctor_id, parse_day(day))
    slots = [
        TimeSlot(time=entry.slot.label, available=entry.available, reason=entry.reason)
        for entry in availability.slots
    ]
    return DaySlots(
        date=availability.date.isoformat(),
        doctor_id=doctor_id,
        doctor_name=availability.doctor.display_name,
        slots=slots,
        available_count=availability.available_count,
        total_slots=len(slots),
    )

@router.post(
    "/{doctor_id}/reservations",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_reservation(
    doctor_id: int,
    reservation: ReservationCreate,
    claim: IdentityClaim = Depends(require_session),
    scheduler: SlotScheduler = Depends(get_slot_scheduler),
    db: Session = Depends(get_db),
):
    """Book a slot. Losing a race answers 409 SlotConflict."""
    if claim.role == Role.PATIENT and _own_patient_id(db, claim) != reservation.patient_id:
        raise AccessDenied("Patients can only book appointments for themselves")
    if claim.role == Role.DOCTOR and _own_doctor_id(db, claim) != doctor_id:
        raise AccessDenied("Doctors can only book into their own calendar")

    appointment = scheduler.reserve(
        doctor_id=doctor_id,
        patient_id=reservation.patient_id,
        slot_start=reservation.slot_start,
        duration_minutes=reservation.duration_minutes,
        reason=reservation.reason,
    )
    return ReservationResponse.from_appointment(appointment)

@reservations_router.patch("/{reservation_id}/status", response_model=ReservationResponse)
def update_reservation_status(
    reservation_id: int,
    update: ReservationStatusUpdate,
    claim: IdentityClaim = Depends(require_session),
    scheduler: SlotScheduler = Depends(get_slot_scheduler),
    db: Session = Depends(get_db),
):
    """Doctors drive their appointments through the lifecycle; patients may cancel."""
    appointment: Appointment = scheduler.get_appointment(reservation_id)
    if claim.role == Role.DOCTOR:
        if _own_doctor_id(db, claim) != appointment.doctor_id:
            raise AccessDenied("Doctors can only update their own appointments")
    else:
        if _own_patient_id(db, claim) != appointment.patient_id:
            raise AccessDenied("Patients can only update their own appointments")
        if update.status != AppointmentStatus.CANCELLED:
            raise AccessDenied("Patients can only cancel appointments")

    appointment = scheduler.transition(reservation_id, update.status, reason=update.reason)
    return ReservationResponse.from_appointment(appointment)
