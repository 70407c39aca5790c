"""
Error taxonomy shared by the session and scheduling services.

Every error carries a machine-readable ``code`` that the API layer renders as
``{"error": code, "message": ...}`` so callers can tell, for example, a wrong
password apart from a role the account does not hold.
"""

from fastapi import status


class MediAssistError(Exception):
    code = "InternalError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "An unexpected error occurred"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidCredential(MediAssistError):
    code = "InvalidCredential"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password"


class RoleNotPermitted(MediAssistError):
    code = "RoleNotPermitted"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "This account cannot act under the requested role"


class TokenInvalid(MediAssistError):
    code = "TokenInvalid"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Session token is invalid or expired; please sign in again"


class UpstreamUnavailable(MediAssistError):
    code = "UpstreamUnavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "A required upstream service is unavailable"


class SlotConflict(MediAssistError):
    code = "SlotConflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "The requested slot is no longer available"


class MalformedRequest(MediAssistError):
    code = "MalformedRequest"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Malformed request"


class DoctorNotFound(MalformedRequest):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Doctor not found"


class AppointmentNotFound(MalformedRequest):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Appointment not found"


class AccessDenied(MediAssistError):
    code = "AccessDenied"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not enough permissions"


class InvalidTransition(MediAssistError):
    code = "InvalidTransition"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Appointment status cannot change that way"


class RateLimited(MediAssistError):
    code = "RateLimited"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Please try again later."
