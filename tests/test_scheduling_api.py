import pytest
from datetime import datetime

from mediassist.core.security import Role
from mediassist.models.doctor import Doctor

from .conftest import DEFAULT_PASSWORD

SLOTS_DAY = "2024-10-15"

def bearer(token):
    return {"Authorization": f"Bearer {token}"}

def token_for(client, email, role):
    response = client.post("/api/v1/sessions", json={
        "email": email, "password": DEFAULT_PASSWORD, "role": role,
    })
    assert response.status_code == 201
    return response.json()["token"]

def reserve(client, doctor_id, token, patient_id, start="2024-10-15T10:00:00", duration=30):
    return client.post(
        f"/api/v1/doctors/{doctor_id}/reservations",
        json={"patientID": patient_id, "slotStart": start, "durationMinutes": duration},
        headers=bearer(token),
    )

def slot_map(response):
    return {slot["time"]: slot for slot in response.json()["slots"]}

@pytest.fixture
def clinic(client, make_account, pin_clinic_clock):
    """One doctor and one patient, with the clinic clock at 08:00 on the booking day."""
    pin_clinic_clock(datetime(2024, 10, 15, 8, 0))
    doctor = make_account("house@example.com", roles=(Role.DOCTOR,), display_name="Dr. House")
    patient = make_account("pat@example.com", roles=(Role.PATIENT,), display_name="Pat")
    return {
        "doctor_id": doctor.doctor.id,
        "patient_id": patient.patient.id,
        "doctor_token": token_for(client, "house@example.com", "DOCTOR"),
        "patient_token": token_for(client, "pat@example.com", "PATIENT"),
    }

class TestSlots:

    def test_full_day_grid(self, client, clinic):
        response = client.get(f"/api/v1/doctors/{clinic['doctor_id']}/slots", params={"date": SLOTS_DAY})

        assert response.status_code == 200
        data = response.json()
        assert data["date"] == SLOTS_DAY
        assert data["doctorID"] == clinic["doctor_id"]
        assert data["doctorName"] == "Dr. House"
        assert data["totalSlots"] == 16
        assert data["availableCount"] == 16
        assert data["slots"][0] == {"time": "09:00", "available": True}
        assert data["slots"][-1]["time"] == "16:30"

    def test_booked_slot_is_reported(self, client, clinic):
        reserve(client, clinic["doctor_id"], clinic["patient_token"], clinic["patient_id"])

        response = client.get(f"/api/v1/doctors/{clinic['doctor_id']}/slots", params={"date": SLOTS_DAY})

        slots = slot_map(response)
        assert slots["10:00"] == {"time": "10:00", "available": False, "reason": "booked"}
        assert slots["10:30"]["available"] is True
        assert response.json()["availableCount"] == 15

    def test_past_slots_mid_morning(self, client, clinic, pin_clinic_clock):
        reserve(client, clinic["doctor_id"], clinic["patient_token"], clinic["patient_id"])
        pin_clinic_clock(datetime(2024, 10, 15, 9, 45))

        slots = slot_map(client.get(
            f"/api/v1/doctors/{clinic['doctor_id']}/slots", params={"date": SLOTS_DAY}
        ))

        assert slots["09:00"]["reason"] == "past"
        assert slots["09:30"]["reason"] == "past"
        assert slots["10:00"]["reason"] == "booked"
        assert slots["10:30"]["available"] is True

    @pytest.mark.parametrize("day", ["15-10-2024", "2024-13-01", "2024-02-30", "tomorrow"])
    def test_malformed_date(self, client, clinic, day):
        response = client.get(f"/api/v1/doctors/{clinic['doctor_id']}/slots", params={"date": day})

        assert response.status_code == 400
        assert response.json()["error"] == "MalformedRequest"

    def test_last_representable_date(self, client, clinic):
        response = client.get(f"/api/v1/doctors/{clinic['doctor_id']}/slots", params={"date": "9999-12-31"})

        assert response.status_code == 200
        assert response.json()["totalSlots"] == 16

    def test_missing_date(self, client, clinic):
        response = client.get(f"/api/v1/doctors/{clinic['doctor_id']}/slots")
        assert response.status_code == 400

    def test_unknown_doctor(self, client, clinic):
        response = client.get("/api/v1/doctors/9999/slots", params={"date": SLOTS_DAY})

        assert response.status_code == 404
        assert response.json()["error"] == "MalformedRequest"

    def test_unavailable_doctor(self, client, clinic, db_session):
        db_session.query(Doctor).filter(Doctor.id == clinic["doctor_id"]).update({"is_available": False})
        db_session.commit()

        response = client.get(f"/api/v1/doctors/{clinic['doctor_id']}/slots", params={"date": SLOTS_DAY})
        assert response.status_code == 400

class TestReservations:

    def test_patient_books_for_self(self, client, clinic):
        response = reserve(client, clinic["doctor_id"], clinic["patient_token"], clinic["patient_id"])

        assert response.status_code == 201
        data = response.json()
        assert data["reservationID"]
        assert data["status"] == "SCHEDULED"
        assert data["doctorID"] == clinic["doctor_id"]
        assert data["patientID"] == clinic["patient_id"]
        assert data["scheduledStart"] == "2024-10-15T10:00:00"
        assert data["durationMinutes"] == 30

    def test_second_booking_conflicts(self, client, clinic):
        reserve(client, clinic["doctor_id"], clinic["patient_token"], clinic["patient_id"])

        response = reserve(
            client, clinic["doctor_id"], clinic["doctor_token"], clinic["patient_id"],
            start="2024-10-15T09:45:00",
        )

        assert response.status_code == 409
        assert response.json()["error"] == "SlotConflict"

    def test_doctor_books_into_own_calendar(self, client, clinic):
        response = reserve(client, clinic["doctor_id"], clinic["doctor_token"], clinic["patient_id"])
        assert response.status_code == 201

    def test_doctor_cannot_book_other_calendar(self, client, clinic, make_account):
        other = make_account("wilson@example.com", roles=(Role.DOCTOR,)).doctor.id

        response = reserve(client, other, clinic["doctor_token"], clinic["patient_id"])

        assert response.status_code == 403
        assert response.json()["error"] == "AccessDenied"

    def test_patient_cannot_book_for_someone_else(self, client, clinic, make_account):
        other = make_account("other@example.com").patient.id

        response = reserve(client, clinic["doctor_id"], clinic["patient_token"], other)

        assert response.status_code == 403
        assert response.json()["error"] == "AccessDenied"

    def test_requires_session(self, client, clinic):
        response = client.post(
            f"/api/v1/doctors/{clinic['doctor_id']}/reservations",
            json={"patientID": clinic["patient_id"], "slotStart": "2024-10-15T10:00:00"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "TokenInvalid"

    def test_past_slot(self, client, clinic, pin_clinic_clock):
        pin_clinic_clock(datetime(2024, 10, 15, 12, 0))

        response = reserve(client, clinic["doctor_id"], clinic["patient_token"], clinic["patient_id"])

        assert response.status_code == 400
        assert response.json()["error"] == "MalformedRequest"

    def test_outside_working_hours(self, client, clinic):
        response = reserve(
            client, clinic["doctor_id"], clinic["patient_token"], clinic["patient_id"],
            start="2024-10-15T18:00:00",
        )
        assert response.status_code == 400

    @pytest.mark.parametrize("duration", [10 ** 10, 24 * 60 + 1, 0])
    def test_duration_out_of_range(self, client, clinic, duration):
        response = reserve(
            client, clinic["doctor_id"], clinic["patient_token"], clinic["patient_id"],
            duration=duration,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "MalformedRequest"

    def test_duration_past_closing(self, client, clinic):
        response = reserve(
            client, clinic["doctor_id"], clinic["patient_token"], clinic["patient_id"],
            duration=8 * 60,
        )
        assert response.status_code == 400

    def test_unknown_doctor(self, client, clinic):
        response = reserve(client, 9999, clinic["patient_token"], clinic["patient_id"])
        assert response.status_code == 404

    def test_malformed_body(self, client, clinic):
        response = client.post(
            f"/api/v1/doctors/{clinic['doctor_id']}/reservations",
            json={"slotStart": "not-a-time"},
            headers=bearer(clinic["patient_token"]),
        )

        assert response.status_code == 400
        assert "body.patientID" in response.json()["fields"]

class TestStatusUpdates:

    @pytest.fixture
    def reservation_id(self, client, clinic):
        return reserve(client, clinic["doctor_id"], clinic["patient_token"], clinic["patient_id"]).json()["reservationID"]

    def update(self, client, reservation_id, token, status, reason=None):
        return client.patch(
            f"/api/v1/reservations/{reservation_id}/status",
            json={"status": status, "reason": reason},
            headers=bearer(token),
        )

    def test_doctor_confirms(self, client, clinic, reservation_id):
        response = self.update(client, reservation_id, clinic["doctor_token"], "CONFIRMED")

        assert response.status_code == 200
        assert response.json()["status"] == "CONFIRMED"

        slots = slot_map(client.get(
            f"/api/v1/doctors/{clinic['doctor_id']}/slots", params={"date": SLOTS_DAY}
        ))
        assert slots["10:00"]["reason"] == "booked"

    def test_patient_cancels_and_slot_frees(self, client, clinic, reservation_id):
        response = self.update(client, reservation_id, clinic["patient_token"], "CANCELLED", "Feeling better")

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert response.json()["cancelledReason"] == "Feeling better"

        slots = slot_map(client.get(
            f"/api/v1/doctors/{clinic['doctor_id']}/slots", params={"date": SLOTS_DAY}
        ))
        assert slots["10:00"]["available"] is True

        again = reserve(client, clinic["doctor_id"], clinic["patient_token"], clinic["patient_id"])
        assert again.status_code == 201

    def test_patient_cannot_confirm(self, client, clinic, reservation_id):
        response = self.update(client, reservation_id, clinic["patient_token"], "CONFIRMED")

        assert response.status_code == 403
        assert response.json()["error"] == "AccessDenied"

    def test_invalid_transition(self, client, clinic, reservation_id):
        response = self.update(client, reservation_id, clinic["doctor_token"], "COMPLETED")

        assert response.status_code == 409
        assert response.json()["error"] == "InvalidTransition"

    def test_unknown_status(self, client, clinic, reservation_id):
        response = self.update(client, reservation_id, clinic["doctor_token"], "LOST")
        assert response.status_code == 400

    def test_unknown_reservation(self, client, clinic):
        response = self.update(client, 9999, clinic["doctor_token"], "CANCELLED")
        assert response.status_code == 404

    def test_other_doctor_cannot_update(self, client, clinic, reservation_id, make_account):
        make_account("wilson@example.com", roles=(Role.DOCTOR,))
        token = token_for(client, "wilson@example.com", "DOCTOR")

        response = self.update(client, reservation_id, token, "CONFIRMED")
        assert response.status_code == 403
