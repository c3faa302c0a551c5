# medibot/exceptions.py
from typing import Any, Dict, List, Optional


class MedibotError(Exception):
    """Base class for errors surfaced to the caller of a core operation."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MedibotError):
    """One or more request fields are missing or malformed.

    Carries every violation, not just the first one found.
    """

    status_code = 422

    def __init__(self, errors: List[Dict[str, str]]):
        fields = ", ".join(e["field"] for e in errors)
        super().__init__(f"Invalid request: {fields}")
        self.errors = errors

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        return cls([
            {"field": ".".join(str(part) for part in err["loc"]) or "body", "message": err["msg"]}
            for err in exc.errors()
        ])


class NotFound(MedibotError):
    status_code = 404

    def __init__(self, resource: str, resource_id: Any):
        super().__init__(f"{resource} {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class DoctorNotFound(NotFound):
    def __init__(self, doctor_id: Any):
        super().__init__("Doctor", doctor_id)


class NoAvailableDoctors(MedibotError):
    status_code = 409

    def __init__(self, specialty: Optional[str] = None):
        super().__init__("No active doctors are available for assignment")
        self.specialty = specialty


class InvalidTransition(MedibotError):
    status_code = 409

    def __init__(self, resource_id: Any, current: str, requested: str):
        super().__init__(f"Cannot move {resource_id} from '{current}' to '{requested}'")
        self.resource_id = resource_id
        self.current = current
        self.requested = requested


class PermissionDenied(MedibotError):
    status_code = 403


class NotificationDeliveryFailure(Exception):
    """Raised by the notification gateway. Logged by the dispatcher, never surfaced."""
