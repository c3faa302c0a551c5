# tests/test_notifications.py
import threading
from unittest.mock import MagicMock

import pytest

from medibot import crud, models, schemas
from medibot.database import SessionLocal
from medibot.exceptions import NotificationDeliveryFailure
from medibot.services.email_service import EmailService
from medibot.services.notification_service import deliver_notification


class _Gateway:
    def __init__(self, result=True, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    async def send(self, notification):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


def _request_notification(appointment_id=None):
    return schemas.AppointmentNotification(
        notification_type=models.NotificationType.appointment_request,
        recipient="sarah.johnson@medibot.com",
        subject="New Appointment Request - Jane Doe",
        appointment_id=appointment_id,
        context={
            "appointment_id": appointment_id,
            "patient_name": "Jane Doe",
            "patient_email": "jane.doe@example.com",
            "patient_phone": None,
            "doctor_name": "Dr. Sarah Johnson",
            "appointment_date": "2030-05-14",
            "appointment_time": "10:30",
            "reason": "Recurring headaches",
            "symptoms": "<b>pounding</b>",
            "consultation_fee": "150.00",
            "meeting_link": None,
            "doctor_notes": None,
        },
    )


@pytest.mark.asyncio
async def test_successful_delivery_is_recorded(db):
    status = await deliver_notification(_request_notification(), _Gateway())

    assert status == models.NotificationStatus.sent
    log = crud.get_notification_logs(db)[0]
    assert log.status == models.NotificationStatus.sent
    assert log.attempts == 1
    assert log.sent_at is not None


@pytest.mark.asyncio
async def test_failed_delivery_is_recorded_not_raised(db):
    gateway = _Gateway(error=NotificationDeliveryFailure("SendGrid error: 401 - Unauthorized"))

    status = await deliver_notification(_request_notification(), gateway)

    assert status == models.NotificationStatus.failed
    log = crud.get_notification_logs(db)[0]
    assert log.status == models.NotificationStatus.failed
    assert "401" in log.error_message


@pytest.mark.asyncio
async def test_unexpected_gateway_error_is_contained(db):
    status = await deliver_notification(_request_notification(), _Gateway(error=RuntimeError("socket closed")))
    assert status == models.NotificationStatus.failed


@pytest.mark.asyncio
async def test_unconfigured_email_is_skipped(db):
    status = await deliver_notification(_request_notification(), _Gateway(result=False))
    assert status == models.NotificationStatus.skipped


@pytest.mark.asyncio
async def test_log_writes_run_off_the_event_loop(db):
    loop_thread = threading.get_ident()
    session_threads = []

    def session_factory():
        session_threads.append(threading.get_ident())
        return SessionLocal()

    status = await deliver_notification(_request_notification(), _Gateway(), session_factory)

    assert status == models.NotificationStatus.sent
    assert len(session_threads) == 2
    assert loop_thread not in session_threads


def test_templates_render_and_escape():
    service = EmailService(api_key="", dashboard_url="https://dashboard.medibot.test")
    html = service.render(_request_notification())

    assert "Jane Doe" in html
    assert "Recurring headaches" in html
    assert "&lt;b&gt;pounding&lt;/b&gt;" in html


@pytest.mark.asyncio
async def test_email_service_without_api_key_does_not_send():
    service = EmailService(api_key="")
    assert service.enabled is False
    assert await service.send(_request_notification()) is False


@pytest.mark.asyncio
async def test_sendgrid_rejection_raises_delivery_failure():
    service = EmailService(api_key="SG.test-key")
    service.sg = MagicMock()
    service.sg.send.return_value = MagicMock(status_code=400, body=b"bad request")

    with pytest.raises(NotificationDeliveryFailure):
        await service.send(_request_notification())


@pytest.mark.asyncio
async def test_sendgrid_accepts_message():
    service = EmailService(api_key="SG.test-key")
    service.sg = MagicMock()
    service.sg.send.return_value = MagicMock(status_code=202, body=b"")

    assert await service.send(_request_notification()) is True
    mail = service.sg.send.call_args[0][0]
    assert mail.subject.subject == "New Appointment Request - Jane Doe"


def test_admin_lists_notification_logs(client, doctors, gateway, patient_headers, admin_headers, booking_payload):
    booked = client.post("/api/v1/appointments", json=booking_payload, headers=patient_headers).json()

    response = client.get(
        "/api/v1/notifications", params={"appointmentId": booked["appointmentId"]}, headers=admin_headers
    )

    assert response.status_code == 200
    logs = response.json()
    assert len(logs) == 1
    assert logs[0]["notificationType"] == "appointmentRequest"
    assert logs[0]["status"] == "sent"
    assert logs[0]["recipient"] == "sarah.johnson@medibot.com"

    assert client.get("/api/v1/notifications", headers=patient_headers).status_code == 403
