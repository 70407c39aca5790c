"""
Slot availability and atomic reservation.

Reads are advisory: availability is recomputed from current appointment
statuses without taking locks. Writes for one doctor on one date serialize on
that pair's ``doctor_day_locks`` row; the overlap check runs after the lock
is taken and immediately before the insert, so racing bookings for
overlapping intervals cannot both commit.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, List, Optional
import logging

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import (
    AppointmentNotFound, DoctorNotFound, InvalidTransition,
    MalformedRequest, SlotConflict, UpstreamUnavailable
)
from ..core.security import clinic_now, to_clinic_time
from ..models.appointment import (
    ALLOWED_TRANSITIONS, OCCUPYING_STATUSES, Appointment,
    AppointmentStatus, DoctorDayLock
)
from ..models.doctor import Doctor
from ..models.patient import Patient
from .slot_index import (
    AppointmentSlot, SlotAvailability, compute_availability,
    generate_day_slots, intervals_overlap
)

logger = logging.getLogger(__name__)

LOCK_ATTEMPTS = 3


@dataclass(frozen=True)
class DayAvailability:
    doctor: Doctor
    date: date
    slots: List[SlotAvailability]

    @property
    def available_count(self) -> int:
        return sum(1 for slot in self.slots if slot.available)


class SlotScheduler:
    def __init__(
        self,
        db: Session,
        work_start: Optional[time] = None,
        work_end: Optional[time] = None,
        granularity: Optional[int] = None,
        default_duration: Optional[int] = None,
        clock: Callable[[], datetime] = clinic_now,
    ):
        self.db = db
        self.work_start = work_start or settings.work_day_start
        self.work_end = work_end or settings.work_day_end
        self.granularity = granularity or settings.SLOT_GRANULARITY_MINUTES
        self.default_duration = default_duration or settings.DEFAULT_APPOINTMENT_MINUTES
        self.clock = clock

    def day_slots(self, doctor_id: int, day: date) -> List[AppointmentSlot]:
        return generate_day_slots(doctor_id, day, self.work_start, self.work_end, self.granularity)

    def get_bookable_doctor(self, doctor_id: int) -> Doctor:
        doctor = self.db.get(Doctor, doctor_id)
        if doctor is None:
            raise DoctorNotFound()
        if not doctor.is_available:
            raise MalformedRequest("Doctor is not available for appointments")
        return doctor

    def compute_availability(self, doctor_id: int, day: date, now: Optional[datetime] = None) -> DayAvailability:
        doctor = self.get_bookable_doctor(doctor_id)
        now = to_clinic_time(now) if now else self.clock()
        reservations = [
            (appointment.scheduled_start, appointment.duration_minutes)
            for appointment in self._occupying_reservations(doctor_id, day)
        ]
        slots = compute_availability(
            self.day_slots(doctor_id, day), reservations, now, self.default_duration
        )
        return DayAvailability(doctor=doctor, date=day, slots=slots)

    def reserve(
        self,
        doctor_id: int,
        patient_id: int,
        slot_start: datetime,
        duration_minutes: Optional[int] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Appointment:
        """Book ``[slot_start, slot_start + duration)`` or raise ``SlotConflict``."""
        duration = self.default_duration if duration_minutes is None else duration_minutes
        if duration <= 0:
            raise MalformedRequest("durationMinutes must be positive")

        start = to_clinic_time(slot_start)
        now = to_clinic_time(now) if now else self.clock()

        self.get_bookable_doctor(doctor_id)
        if self.db.get(Patient, patient_id) is None:
            raise MalformedRequest("Patient not found")
        if start <= now:
            raise MalformedRequest("Cannot book a slot in the past")

        day = start.date()
        slots = self.day_slots(doctor_id, day)
        # Compared as minutes so an oversized duration never overflows datetime
        minutes_left = (slots[-1].end - start).total_seconds() / 60
        if start < slots[0].start or duration > minutes_left:
            raise MalformedRequest("Requested time is outside the doctor's working hours")
        end = start + timedelta(minutes=duration)

        self._lock_day(doctor_id, day)
        for existing in self._occupying_reservations(doctor_id, day):
            if intervals_overlap(start, end, existing.scheduled_start, existing.end_time(self.default_duration)):
                self.db.rollback()
                logger.info(
                    f"Reservation conflict for doctor {doctor_id} at {start.isoformat()} "
                    f"(held by appointment {existing.id})"
                )
                raise SlotConflict()

        appointment = Appointment(
            doctor_id=doctor_id,
            patient_id=patient_id,
            scheduled_start=start,
            duration_minutes=duration,
            status=AppointmentStatus.SCHEDULED,
            reason=reason,
        )
        self.db.add(appointment)
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(
            f"Reserved appointment {appointment.id} for doctor {doctor_id}, "
            f"patient {patient_id} at {start.isoformat()} ({duration} min)"
        )
        return appointment

    def get_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise AppointmentNotFound()
        return appointment

    def transition(
        self,
        appointment_id: int,
        new_status: AppointmentStatus,
        reason: Optional[str] = None,
    ) -> Appointment:
        """Move an appointment along its state machine.

        Re-applying the current status is a no-op, so a repeated cancel
        succeeds quietly.
        """
        new_status = AppointmentStatus(new_status)
        appointment = self.get_appointment(appointment_id)

        self._lock_day(appointment.doctor_id, appointment.scheduled_start.date())
        self.db.refresh(appointment)
        current = AppointmentStatus(appointment.status)

        if current == new_status:
            self.db.rollback()
            return appointment
        if new_status not in ALLOWED_TRANSITIONS[current]:
            self.db.rollback()
            raise InvalidTransition(f"Cannot move appointment from {current.value} to {new_status.value}")

        appointment.status = new_status
        if new_status == AppointmentStatus.CANCELLED:
            appointment.cancelled_reason = reason
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"Appointment {appointment.id} moved from {current.value} to {new_status.value}")
        return appointment

    def _occupying_reservations(self, doctor_id: int, day: date) -> List[Appointment]:
        day_start = datetime.combine(day, time.min)
        day_end = datetime.combine(day, time.max)
        return self.db.execute(
            select(Appointment)
            .where(
                Appointment.doctor_id == doctor_id,
                Appointment.scheduled_start >= day_start,
                Appointment.scheduled_start <= day_end,
                Appointment.status.in_(list(OCCUPYING_STATUSES)),
            )
            .order_by(Appointment.scheduled_start)
            .execution_options(populate_existing=True)
        ).scalars().all()

    def _lock_day(self, doctor_id: int, day: date) -> None:
        # The first statement of the write transaction takes the row lock
        for _ in range(LOCK_ATTEMPTS):
            bumped = self.db.execute(
                update(DoctorDayLock)
                .where(DoctorDayLock.doctor_id == doctor_id, DoctorDayLock.day == day)
                .values(version=DoctorDayLock.version + 1)
                .execution_options(synchronize_session=False)
            ).rowcount
            if bumped:
                return
            try:
                self.db.execute(insert(DoctorDayLock).values(doctor_id=doctor_id, day=day, version=1))
                return
            except IntegrityError:
                # Another writer created the row first; take the lock through it
                self.db.rollback()
        raise UpstreamUnavailable("Appointment store is busy; please retry")
