# tests/conftest.py
import os
import tempfile
from functools import lru_cache

# Settings are read at import time, so the environment has to be in place first.
_db_dir = tempfile.mkdtemp(prefix="dentalclinic-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-at-least-32-characters"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["NOTIFICATION_MAX_ATTEMPTS"] = "3"
os.environ["NOTIFICATION_RETRY_BACKOFF_SECONDS"] = "0"
os.environ["DEFAULT_COUNTRY_CODE"] = "55"
for _name in ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_WHATSAPP_NUMBER",
              "N8N_WEBHOOK_URL", "ADMIN_EMAIL", "ADMIN_PASSWORD"):
    os.environ.pop(_name, None)

import pytest
from httpx import AsyncClient, ASGITransport

from dentalclinic import models, security
from dentalclinic.database import SessionLocal, create_tables, drop_tables
from dentalclinic.main import app
from dentalclinic.security import AuthContext
from dentalclinic.services.notification_service import dispatcher

PASSWORD = "secret123"


class FakeGateway:
    """Records sends; numbers in ``failing`` are rejected, ``fail_next`` rejects the next N sends."""
    backend = "fake"

    def __init__(self):
        self.calls = []
        self.failing = set()
        self.fail_next = 0

    async def send_message(self, phone_number, body):
        self.calls.append((phone_number, body))
        if phone_number in self.failing:
            return {"success": False, "error": "number rejected"}
        if self.fail_next > 0:
            self.fail_next -= 1
            return {"success": False, "error": "gateway unavailable"}
        return {"success": True, "message_id": f"fake-{len(self.calls)}"}


@lru_cache()
def _password_hash():
    return security.get_password_hash(PASSWORD)


class Factory:
    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _email(self, prefix):
        self._counter += 1
        return f"{prefix}{self._counter}@example.com"

    def profile(self, role, first_name="Test", last_name="User", phone=None, email=None):
        profile = models.UserProfile(
            email=email or self._email(role.value),
            password_hash=_password_hash(),
            role=role,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
        )
        self.db.add(profile)
        self.db.flush()
        return profile

    def patient(self, first_name="Maria", phone="(11) 98765-4321", **kwargs):
        profile = self.profile(models.UserRole.patient, first_name=first_name, last_name="Silva", phone=phone, **kwargs)
        patient = models.Patient(id=profile.id)
        self.db.add(patient)
        self.db.commit()
        return patient

    def dentist(self, first_name="Carlos", **kwargs):
        profile = self.profile(models.UserRole.dentist, first_name=first_name, last_name="Souza", **kwargs)
        dentist = models.Dentist(id=profile.id, registration_number="CRO-12345")
        self.db.add(dentist)
        self.db.commit()
        return dentist

    def staff(self, role=models.UserRole.receptionist, **kwargs):
        profile = self.profile(role, **kwargs)
        self.db.commit()
        return profile

    def procedure(self, name="Limpeza"):
        procedure = models.Procedure(name=name, estimated_duration=30)
        self.db.add(procedure)
        self.db.commit()
        return procedure

    def appointment(self, patient, dentist, procedure, appointment_date, appointment_time="09:00",
                    status=models.AppointmentStatus.scheduled, **kwargs):
        appointment = models.Appointment(
            patient_id=patient.id,
            dentist_id=dentist.id,
            procedure_id=procedure.id,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            status=status,
            **kwargs,
        )
        self.db.add(appointment)
        self.db.commit()
        return appointment


def auth_for(profile) -> AuthContext:
    return AuthContext(user_id=profile.id, role=profile.role, profile=profile)


def auth_headers(profile) -> dict:
    token = security.create_access_token({"sub": str(profile.id), "role": profile.role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def setup_database():
    drop_tables()
    create_tables()
    yield


@pytest.fixture(autouse=True)
def gateway(monkeypatch):
    fake = FakeGateway()
    monkeypatch.setattr(dispatcher, "gateway", fake)
    return fake


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
async def client():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
