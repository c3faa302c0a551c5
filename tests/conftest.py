# tests/conftest.py
import os
import tempfile

# Settings are read once at import time, so the environment has to be in
# place before anything from medibot is imported.
_DB_DIR = tempfile.mkdtemp(prefix="medibot-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'medibot_test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key-for-medibot-suite-0123456789"
os.environ["ENVIRONMENT"] = "testing"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SENDGRID_API_KEY"] = ""
os.environ["SEED_DEMO_DATA"] = "false"

import pytest
from fastapi.testclient import TestClient

from medibot import crud, models, schemas
from medibot.database import SessionLocal, create_tables, drop_tables
from medibot.exceptions import NotificationDeliveryFailure
from medibot.main import app
from medibot.security import create_access_token
from medibot.services.notification_service import get_notification_gateway


class RecordingGateway:
    """Accepts every notification and keeps it for inspection."""

    def __init__(self):
        self.sent = []

    async def send(self, notification):
        self.sent.append(notification)
        return True


class FailingGateway:
    def __init__(self):
        self.attempts = []

    async def send(self, notification):
        self.attempts.append(notification)
        raise NotificationDeliveryFailure("SendGrid error: 503 - Service Unavailable")


class RecordingNotifier:
    """Stands in for the background dispatcher in service-level tests."""

    def __init__(self):
        self.dispatched = []

    def dispatch(self, notification):
        self.dispatched.append(notification)


def auth_headers(user_id: str, role: str) -> dict:
    token = create_access_token({"sub": user_id, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def fresh_database():
    drop_tables()
    create_tables()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def doctors(db):
    """The three demo doctors, in roster order."""
    crud.seed_doctors(db)
    return crud.get_active_doctors(db)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def patient():
    return schemas.Actor(user_id="patient_001", role=models.UserRole.patient)


@pytest.fixture
def admin():
    return schemas.Actor(user_id="admin_001", role=models.UserRole.admin)


@pytest.fixture
def doctor_actor():
    # Linked to the first demo doctor through Doctor.user_id
    return schemas.Actor(user_id="doctor_001", role=models.UserRole.doctor)


@pytest.fixture
def gateway():
    fake = RecordingGateway()
    app.dependency_overrides[get_notification_gateway] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_notification_gateway, None)


@pytest.fixture
def failing_gateway():
    fake = FailingGateway()
    app.dependency_overrides[get_notification_gateway] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_notification_gateway, None)


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def patient_headers():
    return auth_headers("patient_001", "patient")


@pytest.fixture
def other_patient_headers():
    return auth_headers("patient_002", "patient")


@pytest.fixture
def doctor_headers():
    return auth_headers("doctor_001", "doctor")


@pytest.fixture
def other_doctor_headers():
    return auth_headers("doctor_002", "doctor")


@pytest.fixture
def admin_headers():
    return auth_headers("admin_001", "admin")


@pytest.fixture
def booking_payload():
    return {
        "patientName": "Jane Doe",
        "patientEmail": "Jane.Doe@Example.com",
        "patientPhone": "+1 555 0100",
        "appointmentDate": "2030-05-14",
        "appointmentTime": "10:30",
        "reason": "Recurring headaches",
        "symptoms": "Headache in the mornings for two weeks",
    }
