# tests/test_appointment_lifecycle.py
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from medibot import crud, models, schemas
from medibot.crud import CRUDError
from medibot.database import SessionLocal
from medibot.exceptions import InvalidTransition, NotFound, PermissionDenied, ValidationError
from medibot.services import appointment_service
from medibot.services.appointment_service import (
    DEFAULT_REJECTION_NOTE,
    create_appointment,
    meeting_link_for,
    respond_to_appointment,
)

Status = models.AppointmentStatus


def _book(db, actor, notifier, payload, **overrides):
    return create_appointment(db, {**payload, **overrides}, actor, notifier)


def test_create_persists_pending_appointment_with_doctor_snapshot(db, doctors, patient, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)

    assert appointment.status == Status.pending
    assert appointment.patient_id == "patient_001"
    assert appointment.patient_email == "Jane.Doe@example.com"
    assert appointment.doctor_id == doctors[0].id
    assert appointment.doctor_name == "Dr. Sarah Johnson"
    assert appointment.consultation_fee == Decimal("150.00")
    assert appointment.meeting_link.endswith("/room/pending")


def test_create_notifies_assigned_doctor(db, doctors, patient, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)

    assert len(notifier.dispatched) == 1
    notification = notifier.dispatched[0]
    assert notification.notification_type == models.NotificationType.appointment_request
    assert notification.recipient == doctors[0].email
    assert notification.appointment_id == appointment.id
    assert notification.context["patient_name"] == "Jane Doe"
    assert notification.context["reason"] == "Recurring headaches"
    assert notification.context["symptoms"] == booking_payload["symptoms"]
    assert notification.context["appointment_time"] == "10:30"
    assert notification.context["consultation_fee"] == "150.00"


def test_create_writes_audit_row(db, doctors, patient, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)
    audit = db.query(models.AuditLog).filter(models.AuditLog.resource_id == appointment.id).one()
    assert audit.action == models.AuditAction.APPOINTMENT_CREATE
    assert audit.actor_id == "patient_001"


def test_identical_requests_create_distinct_appointments(db, doctors, patient, notifier, booking_payload):
    first = _book(db, patient, notifier, booking_payload)
    second = _book(db, patient, notifier, booking_payload)
    assert first.id != second.id
    # Second booking goes to the next least loaded doctor
    assert second.doctor_id == doctors[1].id


def test_fee_is_snapshotted_at_booking(db, doctors, patient, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload, doctorId=doctors[0].id)
    crud.update_doctor(db, doctors[0].id, schemas.DoctorUpdate(consultation_fee=Decimal("300")))

    db.expire_all()
    assert crud.get_appointment(db, appointment.id).consultation_fee == Decimal("150.00")


def test_invalid_calendar_date_is_rejected(db, doctors, patient, notifier, booking_payload):
    with pytest.raises(ValidationError) as exc_info:
        _book(db, patient, notifier, booking_payload, appointmentDate="2024-13-01")

    assert [e["field"] for e in exc_info.value.errors] == ["appointmentDate"]
    assert crud.get_appointments(db) == []
    assert notifier.dispatched == []


def test_every_invalid_field_is_reported(db, doctors, patient, notifier, booking_payload):
    payload = {**booking_payload, "patientEmail": "not-an-email", "appointmentTime": "10.30", "reason": ""}
    del payload["patientName"]

    with pytest.raises(ValidationError) as exc_info:
        create_appointment(db, payload, patient, notifier)

    fields = {e["field"] for e in exc_info.value.errors}
    assert fields == {"patientName", "patientEmail", "appointmentTime", "reason"}


def test_doctors_cannot_book(db, doctors, doctor_actor, notifier, booking_payload):
    with pytest.raises(PermissionDenied):
        _book(db, doctor_actor, notifier, booking_payload)


def test_approve_sets_meeting_link_and_notifies_patient(db, doctors, patient, doctor_actor, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)

    approved = respond_to_appointment(db, appointment.id, "approved", "See you soon", doctor_actor, notifier)

    assert approved.status == Status.approved
    assert approved.meeting_link == meeting_link_for(appointment.id)
    assert approved.doctor_notes == "See you soon"
    assert approved.responded_at is not None

    confirmation = notifier.dispatched[-1]
    assert confirmation.notification_type == models.NotificationType.appointment_confirmation
    assert confirmation.recipient == "Jane.Doe@example.com"
    assert confirmation.context["meeting_link"] == approved.meeting_link
    assert confirmation.context["doctor_name"] == "Dr. Sarah Johnson"


def test_reject_uses_default_note_and_omits_link(db, doctors, patient, doctor_actor, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)

    rejected = respond_to_appointment(db, appointment.id, "rejected", None, doctor_actor, notifier)

    assert rejected.status == Status.rejected
    assert rejected.doctor_notes == DEFAULT_REJECTION_NOTE
    rejection = notifier.dispatched[-1]
    assert rejection.notification_type == models.NotificationType.appointment_rejection
    assert "meeting_link" not in rejection.context


def test_second_response_is_an_invalid_transition(db, doctors, patient, doctor_actor, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)
    approved = respond_to_appointment(db, appointment.id, "approved", None, doctor_actor, notifier)
    link = approved.meeting_link

    with pytest.raises(InvalidTransition) as exc_info:
        respond_to_appointment(db, appointment.id, "rejected", "changed my mind", doctor_actor, notifier)

    assert exc_info.value.current == "approved"
    current = crud.get_appointment(db, appointment.id)
    assert current.status == Status.approved
    assert current.meeting_link == link
    assert current.doctor_notes is None
    # Request to the doctor plus exactly one confirmation
    assert len(notifier.dispatched) == 2


def test_approve_after_reject_is_an_invalid_transition(db, doctors, patient, doctor_actor, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)
    respond_to_appointment(db, appointment.id, "rejected", None, doctor_actor, notifier)

    with pytest.raises(InvalidTransition) as exc_info:
        respond_to_appointment(db, appointment.id, "approved", None, doctor_actor, notifier)

    assert exc_info.value.current == "rejected"
    current = crud.get_appointment(db, appointment.id)
    assert current.status == Status.rejected
    assert current.doctor_notes == DEFAULT_REJECTION_NOTE
    # Request to the doctor plus exactly one rejection
    assert len(notifier.dispatched) == 2
    assert notifier.dispatched[-1].notification_type == models.NotificationType.appointment_rejection


def test_concurrent_responses_only_one_wins(db, doctors, patient, doctor_actor, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)

    slow_session = SessionLocal()
    try:
        # The slow responder has already read the appointment as pending
        assert crud.get_appointment(slow_session, appointment.id).status == Status.pending

        respond_to_appointment(db, appointment.id, "approved", None, doctor_actor, notifier)

        with pytest.raises(InvalidTransition):
            respond_to_appointment(slow_session, appointment.id, "rejected", None, doctor_actor, notifier)
    finally:
        slow_session.close()

    db.expire_all()
    assert crud.get_appointment(db, appointment.id).status == Status.approved


def test_respond_to_unknown_appointment(db, doctors, doctor_actor, notifier):
    with pytest.raises(NotFound):
        respond_to_appointment(db, 4242, "approved", None, doctor_actor, notifier)


def test_respond_rejects_unknown_decision(db, doctors, patient, doctor_actor, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)
    with pytest.raises(ValidationError):
        respond_to_appointment(db, appointment.id, "completed", None, doctor_actor, notifier)


def test_only_assigned_doctor_or_admin_may_respond(db, doctors, patient, admin, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)
    other_doctor = schemas.Actor(user_id="doctor_002", role=models.UserRole.doctor)

    with pytest.raises(PermissionDenied):
        respond_to_appointment(db, appointment.id, "approved", None, other_doctor, notifier)
    with pytest.raises(PermissionDenied):
        respond_to_appointment(db, appointment.id, "approved", None, patient, notifier)

    assert respond_to_appointment(db, appointment.id, "approved", None, admin, notifier).status == Status.approved


def test_meeting_link_is_deterministic_per_appointment():
    assert meeting_link_for(7) == meeting_link_for(7)
    assert meeting_link_for(7) != meeting_link_for(8)
    assert meeting_link_for(7).startswith("https://medibot-meet.com/room/7-")


def test_complete_requires_approval_first(db, doctors, patient, doctor_actor, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)

    with pytest.raises(InvalidTransition):
        appointment_service.change_appointment_status(db, appointment.id, "completed", doctor_actor)

    respond_to_appointment(db, appointment.id, "approved", None, doctor_actor, notifier)
    completed = appointment_service.change_appointment_status(db, appointment.id, "completed", doctor_actor)
    assert completed.status == Status.completed


def test_patient_can_cancel_own_appointment_once(db, doctors, patient, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)
    dispatched = len(notifier.dispatched)

    cancelled = appointment_service.change_appointment_status(db, appointment.id, "cancelled", patient)
    assert cancelled.status == Status.cancelled
    assert len(notifier.dispatched) == dispatched

    with pytest.raises(InvalidTransition):
        appointment_service.change_appointment_status(db, appointment.id, "cancelled", patient)


def test_cancelled_appointment_cannot_be_responded_to(db, doctors, patient, doctor_actor, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)
    appointment_service.change_appointment_status(db, appointment.id, "cancelled", patient)

    with pytest.raises(InvalidTransition):
        respond_to_appointment(db, appointment.id, "approved", None, doctor_actor, notifier)


def test_patients_only_see_their_own_appointments(db, doctors, patient, admin, notifier, booking_payload):
    _book(db, patient, notifier, booking_payload)
    someone_else = schemas.Actor(user_id="patient_002", role=models.UserRole.patient)
    _book(db, someone_else, notifier, booking_payload)

    assert len(appointment_service.list_appointments(db, patient)) == 1
    assert len(appointment_service.list_appointments(db, patient, patient_id="patient_002")) == 1
    assert len(appointment_service.list_appointments(db, admin)) == 2

    theirs = appointment_service.list_appointments(db, someone_else)[0]
    with pytest.raises(PermissionDenied):
        appointment_service.get_appointment(db, theirs.id, patient)


def test_doctor_sees_only_assigned_appointments(db, doctors, patient, doctor_actor, notifier, booking_payload):
    _book(db, patient, notifier, booking_payload, doctorId=doctors[0].id)
    _book(db, patient, notifier, booking_payload, doctorId=doctors[1].id)

    mine = appointment_service.list_appointments(db, doctor_actor)
    assert [a.doctor_id for a in mine] == [doctors[0].id]
    assert appointment_service.appointment_stats(db, doctor_actor)["pending"] == 1


def test_delete_is_admin_only(db, doctors, patient, admin, notifier, booking_payload):
    appointment = _book(db, patient, notifier, booking_payload)

    with pytest.raises(PermissionDenied):
        appointment_service.delete_appointment(db, appointment.id, patient)

    appointment_service.delete_appointment(db, appointment.id, admin)
    assert crud.get_appointment(db, appointment.id) is None

    with pytest.raises(NotFound):
        appointment_service.delete_appointment(db, appointment.id, admin)


def _broken_audit_log(*args, **kwargs):
    raise OperationalError("INSERT INTO audit_logs", {}, Exception("disk I/O error"))


def test_status_change_database_failure_rolls_back(db, doctors, patient, notifier, booking_payload, monkeypatch):
    appointment = _book(db, patient, notifier, booking_payload)
    monkeypatch.setattr(crud, "create_audit_log", _broken_audit_log)

    with pytest.raises(CRUDError):
        appointment_service.change_appointment_status(db, appointment.id, "cancelled", patient)

    db.expire_all()
    assert crud.get_appointment(db, appointment.id).status == Status.pending


def test_delete_database_failure_keeps_appointment(db, doctors, patient, admin, notifier, booking_payload, monkeypatch):
    appointment = _book(db, patient, notifier, booking_payload)
    monkeypatch.setattr(crud, "create_audit_log", _broken_audit_log)

    with pytest.raises(CRUDError):
        appointment_service.delete_appointment(db, appointment.id, admin)

    assert crud.get_appointment(db, appointment.id) is not None
