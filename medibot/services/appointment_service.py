# medibot/services/appointment_service.py
import hashlib
import hmac
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..config import get_settings
from ..crud import CRUDError
from ..exceptions import InvalidTransition, NotFound, PermissionDenied, ValidationError
from .assignment_service import select_doctor

logger = structlog.get_logger(__name__)

AppointmentStatus = models.AppointmentStatus

DEFAULT_REJECTION_NOTE = (
    "The doctor is unavailable at the requested time. Please book another slot."
)

# Responses only leave `pending`. Rejected, completed and cancelled are terminal.
ALLOWED_TRANSITIONS = {
    AppointmentStatus.pending: frozenset({AppointmentStatus.approved, AppointmentStatus.rejected, AppointmentStatus.cancelled}),
    AppointmentStatus.approved: frozenset({AppointmentStatus.completed, AppointmentStatus.cancelled}),
    AppointmentStatus.rejected: frozenset(),
    AppointmentStatus.completed: frozenset(),
    AppointmentStatus.cancelled: frozenset(),
}

RESPONSE_DECISIONS = (AppointmentStatus.approved, AppointmentStatus.rejected)


class Notifier(Protocol):
    def dispatch(self, notification: schemas.AppointmentNotification) -> None: ...


def sources_for(target: AppointmentStatus) -> List[AppointmentStatus]:
    return [source for source, targets in ALLOWED_TRANSITIONS.items() if target in targets]


# ==================== LINKS & NOTIFICATIONS ====================

def placeholder_meeting_link() -> str:
    return f"{get_settings().meeting_base_url}/room/pending"


def meeting_link_for(appointment_id: int) -> str:
    """Stable meeting room for an appointment; the same id always yields the same link."""
    settings = get_settings()
    digest = hmac.new(
        settings.secret_key.encode(), f"appointment:{appointment_id}".encode(), hashlib.sha256
    ).hexdigest()[:16]
    return f"{settings.meeting_base_url}/room/{appointment_id}-{digest}"


def _notification_context(appointment: models.Appointment) -> Dict[str, Any]:
    return {
        "appointment_id": appointment.id,
        "patient_name": appointment.patient_name,
        "patient_email": appointment.patient_email,
        "patient_phone": appointment.patient_phone,
        "doctor_name": appointment.doctor_name,
        "appointment_date": appointment.appointment_date.isoformat(),
        "appointment_time": appointment.appointment_time.strftime("%H:%M"),
        "reason": appointment.reason,
        "symptoms": appointment.symptoms,
        "consultation_fee": f"{appointment.consultation_fee:.2f}",
        "meeting_link": appointment.meeting_link,
        "doctor_notes": appointment.doctor_notes,
    }


def build_request_notification(appointment: models.Appointment) -> schemas.AppointmentNotification:
    return schemas.AppointmentNotification(
        notification_type=models.NotificationType.appointment_request,
        recipient=appointment.doctor_email,
        subject=f"New Appointment Request - {appointment.patient_name}",
        appointment_id=appointment.id,
        context=_notification_context(appointment),
    )


def build_decision_notification(appointment: models.Appointment) -> schemas.AppointmentNotification:
    if appointment.status == AppointmentStatus.approved:
        notification_type = models.NotificationType.appointment_confirmation
        subject = f"Appointment Confirmed - {appointment.doctor_name}"
    else:
        notification_type = models.NotificationType.appointment_rejection
        subject = "Appointment Request Update"
    context = _notification_context(appointment)
    if notification_type == models.NotificationType.appointment_rejection:
        context.pop("meeting_link")
    return schemas.AppointmentNotification(
        notification_type=notification_type,
        recipient=appointment.patient_email,
        subject=subject,
        appointment_id=appointment.id,
        context=context,
    )


# ==================== ACCESS ====================

def _own_doctor_id(db: Session, actor: schemas.Actor) -> Optional[int]:
    doctor = crud.get_doctor_by_user_id(db, actor.user_id)
    return doctor.id if doctor else None


def _ensure_can_view(db: Session, appointment: models.Appointment, actor: schemas.Actor) -> None:
    if actor.is_admin:
        return
    if actor.role == models.UserRole.patient and appointment.patient_id == actor.user_id:
        return
    if actor.role == models.UserRole.doctor and appointment.doctor_id is not None \
            and appointment.doctor_id == _own_doctor_id(db, actor):
        return
    raise PermissionDenied("You do not have access to this appointment.")


def _ensure_assigned_doctor(db: Session, appointment: models.Appointment, actor: schemas.Actor) -> None:
    if actor.is_admin:
        return
    if actor.role == models.UserRole.doctor and appointment.doctor_id is not None \
            and appointment.doctor_id == _own_doctor_id(db, actor):
        return
    raise PermissionDenied("Only the assigned doctor can act on this appointment.")


def visibility_scope(db: Session, actor: schemas.Actor,
                     patient_id: Optional[str] = None,
                     doctor_id: Optional[int] = None) -> Tuple[Optional[str], Optional[int], bool]:
    """Narrow query filters to what the actor may see.

    Returns (patient_id, doctor_id, visible); visible is False when the actor
    can see nothing at all (a doctor account with no roster entry).
    """
    if actor.role == models.UserRole.patient:
        return actor.user_id, doctor_id, True
    if actor.role == models.UserRole.doctor:
        own = _own_doctor_id(db, actor)
        return patient_id, own, own is not None
    return patient_id, doctor_id, True


# ==================== LIFECYCLE ====================

def parse_booking_request(request: Union[schemas.AppointmentCreate, Dict[str, Any]]) -> schemas.AppointmentCreate:
    """Validate a raw booking payload, reporting every bad field at once."""
    if isinstance(request, schemas.AppointmentCreate):
        return request
    try:
        return schemas.AppointmentCreate.model_validate(request)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e)


def create_appointment(
    db: Session,
    request: Union[schemas.AppointmentCreate, Dict[str, Any]],
    actor: schemas.Actor,
    notifier: Notifier,
) -> models.Appointment:
    """Create a pending appointment bound to one doctor and alert that doctor.

    Identical payloads are never deduplicated; each call books a new appointment.
    """
    booking = parse_booking_request(request)
    if actor.role not in (models.UserRole.patient, models.UserRole.admin):
        raise PermissionDenied("Only patients can book appointments.")

    assignment = select_doctor(db, doctor_id=booking.doctor_id, specialty=booking.specialty)

    data = booking.model_dump(exclude={"doctor_id", "specialty"})
    data.update(
        patient_id=actor.user_id,
        doctor_id=assignment.doctor_id,
        doctor_name=assignment.doctor_name,
        doctor_email=assignment.doctor_email,
        consultation_fee=assignment.consultation_fee,
        status=AppointmentStatus.pending,
        meeting_link=placeholder_meeting_link(),
    )

    try:
        appointment = crud.add_appointment(db, data)
        crud.create_audit_log(
            db, actor, models.AuditAction.APPOINTMENT_CREATE, "Appointment",
            resource_id=appointment.id,
            details=f"Appointment requested with doctor {assignment.doctor_id}",
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("appointment_create_failed", error=str(e))
        raise CRUDError("A database error occurred while creating the appointment.")

    db.refresh(appointment)
    logger.info(
        "appointment_created",
        appointment_id=appointment.id,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
    )

    notifier.dispatch(build_request_notification(appointment))
    return appointment


def respond_to_appointment(
    db: Session,
    appointment_id: int,
    decision: Union[str, AppointmentStatus],
    doctor_notes: Optional[str],
    actor: schemas.Actor,
    notifier: Notifier,
) -> models.Appointment:
    """Record the doctor's decision on a pending appointment and tell the patient.

    Succeeds at most once per appointment: any call after the first, whatever
    the decision, raises InvalidTransition and changes nothing.
    """
    try:
        target = AppointmentStatus(decision)
    except ValueError:
        target = None
    if target not in RESPONSE_DECISIONS:
        raise ValidationError([{"field": "decision", "message": "must be 'approved' or 'rejected'"}])

    appointment = crud.get_appointment(db, appointment_id)
    if appointment is None:
        raise NotFound("Appointment", appointment_id)
    _ensure_assigned_doctor(db, appointment, actor)

    if appointment.status != AppointmentStatus.pending:
        raise InvalidTransition(appointment_id, appointment.status.value, target.value)

    values: Dict[str, Any] = {
        "status": target,
        "responded_at": datetime.now(timezone.utc),
    }
    if target == AppointmentStatus.approved:
        values["meeting_link"] = meeting_link_for(appointment_id)
        values["doctor_notes"] = doctor_notes
    else:
        values["doctor_notes"] = doctor_notes or DEFAULT_REJECTION_NOTE

    try:
        if not crud.transition_appointment(db, appointment_id, [AppointmentStatus.pending], values):
            # Another response committed first
            db.rollback()
            current = crud.get_appointment(db, appointment_id)
            if current is None:
                raise NotFound("Appointment", appointment_id)
            raise InvalidTransition(appointment_id, current.status.value, target.value)
        crud.create_audit_log(
            db, actor, models.AuditAction.APPOINTMENT_RESPOND, "Appointment",
            resource_id=appointment_id,
            details=f"Appointment {target.value}",
            new_values={"status": target.value},
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("appointment_respond_failed", appointment_id=appointment_id, error=str(e))
        raise CRUDError("A database error occurred while updating the appointment.")

    appointment = crud.get_appointment(db, appointment_id)
    logger.info("appointment_responded", appointment_id=appointment_id, status=target.value)

    notifier.dispatch(build_decision_notification(appointment))
    return appointment


def change_appointment_status(
    db: Session,
    appointment_id: int,
    status: Union[str, AppointmentStatus],
    actor: schemas.Actor,
) -> models.Appointment:
    """Complete or cancel an appointment. No notification is sent."""
    try:
        target = AppointmentStatus(status)
    except ValueError:
        target = None
    if target not in (AppointmentStatus.completed, AppointmentStatus.cancelled):
        raise ValidationError([{"field": "status", "message": "must be 'completed' or 'cancelled'"}])

    appointment = crud.get_appointment(db, appointment_id)
    if appointment is None:
        raise NotFound("Appointment", appointment_id)
    if target == AppointmentStatus.completed:
        _ensure_assigned_doctor(db, appointment, actor)
    else:
        _ensure_can_view(db, appointment, actor)

    allowed_from = sources_for(target)
    if appointment.status not in allowed_from:
        raise InvalidTransition(appointment_id, appointment.status.value, target.value)

    try:
        if not crud.transition_appointment(db, appointment_id, allowed_from, {"status": target}):
            db.rollback()
            current = crud.get_appointment(db, appointment_id)
            if current is None:
                raise NotFound("Appointment", appointment_id)
            raise InvalidTransition(appointment_id, current.status.value, target.value)
        crud.create_audit_log(
            db, actor, models.AuditAction.APPOINTMENT_STATUS, "Appointment",
            resource_id=appointment_id,
            details=f"Appointment {target.value}",
            new_values={"status": target.value},
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("appointment_status_failed", appointment_id=appointment_id, error=str(e))
        raise CRUDError("A database error occurred while updating the appointment.")
    return crud.get_appointment(db, appointment_id)


def delete_appointment(db: Session, appointment_id: int, actor: schemas.Actor) -> None:
    if not actor.is_admin:
        raise PermissionDenied("Only administrators can delete appointments.")
    try:
        crud.create_audit_log(
            db, actor, models.AuditAction.DELETE, "Appointment", resource_id=appointment_id,
            details=f"Deleted appointment {appointment_id}",
        )
        deleted = crud.delete_appointment(db, appointment_id)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("appointment_delete_failed", appointment_id=appointment_id, error=str(e))
        raise CRUDError("A database error occurred while deleting the appointment.")
    if not deleted:
        db.rollback()
        raise NotFound("Appointment", appointment_id)


# ==================== QUERIES ====================

def get_appointment(db: Session, appointment_id: int, actor: schemas.Actor) -> models.Appointment:
    appointment = crud.get_appointment(db, appointment_id)
    if appointment is None:
        raise NotFound("Appointment", appointment_id)
    _ensure_can_view(db, appointment, actor)
    return appointment


def list_appointments(
    db: Session,
    actor: schemas.Actor,
    patient_id: Optional[str] = None,
    doctor_id: Optional[int] = None,
    status: Optional[AppointmentStatus] = None,
    limit: Optional[int] = None,
) -> List[models.Appointment]:
    patient_id, doctor_id, visible = visibility_scope(db, actor, patient_id, doctor_id)
    if not visible:
        return []
    return crud.get_appointments(db, patient_id=patient_id, doctor_id=doctor_id, status=status, limit=limit)


def upcoming_appointments(db: Session, actor: schemas.Actor, days: int = 7) -> List[models.Appointment]:
    patient_id, doctor_id, visible = visibility_scope(db, actor)
    if not visible:
        return []
    return crud.get_upcoming_appointments(db, days=days, patient_id=patient_id, doctor_id=doctor_id)


def appointment_stats(db: Session, actor: schemas.Actor) -> Dict[str, int]:
    patient_id, doctor_id, visible = visibility_scope(db, actor)
    if not visible:
        return schemas.AppointmentStats().model_dump()
    return crud.get_appointment_stats(db, patient_id=patient_id, doctor_id=doctor_id)
