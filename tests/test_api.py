# tests/test_api.py
from datetime import date
from decimal import Decimal

from dentalclinic import models
from dentalclinic.database import SessionLocal
from dentalclinic.models import AppointmentStatus, NotificationStatus, UserRole
from dentalclinic.services import notification_templates as templates
from dentalclinic.services.notification_service import dispatcher

from conftest import PASSWORD, auth_headers

MONDAY = "2025-03-10"


def _booking(patient, dentist, procedure, day=MONDAY, at="09:00"):
    return {
        "patientId": patient.id,
        "dentistId": dentist.id,
        "procedureId": procedure.id,
        "appointmentDate": day,
        "appointmentTime": at,
    }


async def test_health(client):
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["database"] == "ok"


async def test_signup_and_login(client):
    response = await client.post("/api/v1/auth/signup", json={
        "email": "Joana@Example.com",
        "password": "senha1234",
        "firstName": "Joana",
        "phone": "11 90000-0000",
    })
    assert response.status_code == 201
    assert response.json()["role"] == "patient"

    response = await client.post("/api/v1/auth/token", data={"username": "joana@example.com", "password": "senha1234"})
    assert response.status_code == 200
    token = response.json()["access_token"]

    response = await client.get("/api/v1/profiles/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "joana@example.com"
    assert body["patient"]["is_minor"] is False


async def test_signup_duplicate_email(client, factory):
    factory.patient(email="maria@example.com")
    response = await client.post("/api/v1/auth/signup", json={
        "email": "maria@example.com", "password": "senha1234", "firstName": "Maria",
    })
    assert response.status_code == 400
    assert response.json()["error"] == "conflict"


async def test_login_with_wrong_password(client, factory):
    factory.patient(email="maria@example.com")
    response = await client.post("/api/v1/auth/token", data={"username": "maria@example.com", "password": "wrong-1"})
    assert response.status_code == 401

    response = await client.post("/api/v1/auth/token", data={"username": "maria@example.com", "password": PASSWORD})
    assert response.status_code == 200


async def test_unauthenticated_requests_are_rejected(client):
    response = await client.get("/api/v1/appointments")
    assert response.status_code == 401
    assert response.json() == {"detail": "Not authenticated", "error": "unauthorized"}

    response = await client.get("/api/v1/appointments", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


async def test_book_appointment_flow(client, factory, gateway):
    patient = factory.patient()
    dentist = factory.dentist()
    procedure = factory.procedure()
    headers = auth_headers(patient.profile)

    response = await client.post("/api/v1/appointments/create", json=_booking(patient, dentist, procedure), headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    appointment_id = body["appointment"]

    # The reminder is delivered after the response
    assert len(gateway.calls) == 1
    assert gateway.calls[0][0] == "5511987654321"
    with SessionLocal() as check:
        notification = check.query(models.Notification).one()
        assert notification.status == NotificationStatus.sent
        assert notification.appointment_id == appointment_id

    response = await client.post("/api/v1/appointments/create", json=_booking(patient, dentist, procedure), headers=headers)
    assert response.status_code == 400
    assert response.json() == {"detail": "Time slot not available", "error": "conflict"}

    response = await client.get(
        "/api/v1/appointments/available-slots",
        params={"dentistId": dentist.id, "date": MONDAY},
        headers=headers,
    )
    assert response.status_code == 200
    assert "09:00" not in response.json()["slots"]

    response = await client.get("/api/v1/appointments", headers=headers)
    assert response.status_code == 200
    listed = response.json()
    assert len(listed) == 1
    assert listed[0]["dentist_name"] == "Carlos Souza"
    assert listed[0]["procedure_name"] == "Limpeza"


async def test_booking_on_weekend_is_rejected(client, factory):
    patient = factory.patient()
    response = await client.post(
        "/api/v1/appointments/create",
        json=_booking(patient, factory.dentist(), factory.procedure(), day="2025-03-15"),
        headers=auth_headers(patient.profile),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "validation"


async def test_booking_for_another_patient_is_forbidden(client, factory):
    patient = factory.patient()
    other = factory.patient(first_name="Ana")
    response = await client.post(
        "/api/v1/appointments/create",
        json=_booking(patient, factory.dentist(), factory.procedure()),
        headers=auth_headers(other.profile),
    )
    assert response.status_code == 403


async def test_patient_confirmation(client, factory):
    patient = factory.patient()
    other = factory.patient(first_name="Ana")
    appointment = factory.appointment(patient, factory.dentist(), factory.procedure(), date(2025, 3, 10))

    response = await client.post(
        "/api/v1/appointments/confirm", json={"appointmentId": appointment.id}, headers=auth_headers(other.profile)
    )
    assert response.status_code == 403

    response = await client.post(
        "/api/v1/appointments/confirm", json={"appointmentId": 9999}, headers=auth_headers(patient.profile)
    )
    assert response.status_code == 404

    response = await client.post(
        "/api/v1/appointments/confirm", json={"appointmentId": appointment.id}, headers=auth_headers(patient.profile)
    )
    assert response.status_code == 200
    assert response.json()["confirmed_by_patient"] is True


async def test_dentist_confirmation_sends_whatsapp(client, factory, gateway):
    patient = factory.patient()
    dentist = factory.dentist()
    appointment = factory.appointment(patient, dentist, factory.procedure(), date(2025, 3, 10))
    headers = auth_headers(dentist.profile)

    response = await client.get(f"/api/v1/appointments/{appointment.id}/confirmation-preview", headers=headers)
    assert response.status_code == 200
    assert response.json()["phone"] == "5511987654321"
    assert gateway.calls == []

    response = await client.post(f"/api/v1/appointments/{appointment.id}/confirm-by-dentist", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["appointment"]["status"] == "confirmed"
    assert len(gateway.calls) == 1

    with SessionLocal() as check:
        stored = check.get(models.Appointment, appointment.id)
        assert stored.whatsapp_sent_at is not None
        assert stored.status == AppointmentStatus.confirmed

    response = await client.post(
        f"/api/v1/appointments/{appointment.id}/confirm-by-dentist", headers=auth_headers(patient.profile)
    )
    assert response.status_code == 403


async def test_whatsapp_send(client, factory, gateway):
    patient = factory.patient()
    receptionist = factory.staff(UserRole.receptionist)
    headers = auth_headers(receptionist)

    response = await client.post("/api/v1/whatsapp/send", json={
        "patientId": patient.id,
        "template": "payment_reminder",
        "templateArgs": {"patient_name": "Maria", "amount": "120.00", "due_date": "15/03/2025"},
    }, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["messageId"] == "fake-1"
    assert "R$ 120.00" in gateway.calls[0][1]

    response = await client.post("/api/v1/whatsapp/send", json={"patientId": 9999, "message": "Oi"}, headers=headers)
    assert response.status_code == 404

    gateway.failing.add("5511987654321")
    response = await client.post("/api/v1/whatsapp/send", json={"patientId": patient.id, "message": "Oi"}, headers=headers)
    assert response.status_code == 502
    assert response.json()["error"] == "upstream"

    response = await client.post(
        "/api/v1/whatsapp/send", json={"patientId": patient.id, "message": "Oi"}, headers=auth_headers(patient.profile)
    )
    assert response.status_code == 403


async def test_whatsapp_send_without_phone(client, factory, gateway):
    patient = factory.patient(phone=None)
    receptionist = factory.staff(UserRole.receptionist)
    response = await client.post(
        "/api/v1/whatsapp/send", json={"patientId": patient.id, "message": "Oi"}, headers=auth_headers(receptionist)
    )
    assert response.status_code == 400
    assert gateway.calls == []


async def test_send_whatsapp_for_appointment(client, factory, gateway):
    patient = factory.patient(phone=None)
    appointment = factory.appointment(patient, factory.dentist(), factory.procedure(), date(2025, 3, 10))
    receptionist = factory.staff(UserRole.receptionist)

    response = await client.post(
        "/api/v1/send-whatsapp",
        json={"appointmentId": appointment.id, "patientPhone": "+55 (11) 97777-8888"},
        headers=auth_headers(receptionist),
    )
    assert response.status_code == 200
    assert gateway.calls[0][0] == "5511977778888"
    with SessionLocal() as check:
        assert check.get(models.Appointment, appointment.id).whatsapp_sent_at is not None


async def test_payment_endpoints(client, factory):
    patient = factory.patient()
    receptionist = factory.staff(UserRole.receptionist)
    headers = auth_headers(receptionist)

    response = await client.post(
        "/api/v1/budgets", json={"patientId": patient.id, "totalAmount": "800.00"}, headers=headers
    )
    assert response.status_code == 201
    budget_id = response.json()["id"]

    response = await client.post("/api/v1/payments/create", json={
        "budgetId": budget_id, "patientId": patient.id, "amount": 250, "paymentMethod": "cash",
    }, headers=headers)
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert "paymentId" in response.json()

    response = await client.post("/api/v1/payments/create", json={
        "budgetId": budget_id, "patientId": patient.id, "amount": 0, "paymentMethod": "cash",
    }, headers=headers)
    assert response.status_code == 422

    response = await client.post("/api/v1/payments/create", json={
        "budgetId": budget_id, "patientId": patient.id, "amount": 10, "paymentMethod": "cash",
    }, headers=auth_headers(patient.profile))
    assert response.status_code == 403

    response = await client.get("/api/v1/payments", headers=auth_headers(patient.profile))
    assert response.status_code == 200
    payments = response.json()
    assert len(payments) == 1
    assert Decimal(str(payments[0]["amount"])) == Decimal("250.00")
    assert payments[0]["status"] == "completed"


async def test_clinical_history(client, factory):
    patient = factory.patient()
    other = factory.patient(first_name="Ana")
    dentist = factory.dentist()
    receptionist = factory.staff(UserRole.receptionist)

    response = await client.post(
        f"/api/v1/patients/{patient.id}/records",
        json={"clinicalNotes": "Cárie no 36", "diagnosis": "Cárie", "treatmentPlan": "Restauração"},
        headers=auth_headers(dentist.profile),
    )
    assert response.status_code == 201
    assert response.json()["author_id"] == dentist.id

    response = await client.post(
        f"/api/v1/patients/{patient.id}/records", json={"diagnosis": "x"}, headers=auth_headers(receptionist)
    )
    assert response.status_code == 403

    response = await client.post(
        f"/api/v1/patients/{patient.id}/documents",
        json={"fileName": "raio-x.png", "fileUrl": "https://files.example.com/raio-x.png", "documentType": "xray"},
        headers=auth_headers(receptionist),
    )
    assert response.status_code == 201

    response = await client.get(f"/api/v1/patients/{patient.id}/records", headers=auth_headers(patient.profile))
    assert response.status_code == 200
    assert len(response.json()) == 1

    response = await client.get(f"/api/v1/patients/{patient.id}/documents", headers=auth_headers(other.profile))
    assert response.status_code == 403


async def test_clinical_history_checks_appointment_reference(client, factory):
    patient = factory.patient()
    other = factory.patient(first_name="Ana")
    dentist = factory.dentist()
    procedure = factory.procedure()
    own = factory.appointment(patient, dentist, procedure, date(2025, 3, 10), "09:00")
    foreign = factory.appointment(other, dentist, procedure, date(2025, 3, 10), "09:30")
    receptionist = factory.staff(UserRole.receptionist)

    response = await client.post(
        f"/api/v1/patients/{patient.id}/records",
        json={"appointmentId": foreign.id, "diagnosis": "Cárie"},
        headers=auth_headers(dentist.profile),
    )
    assert response.status_code == 400
    assert response.json()["error"] == "validation"

    response = await client.post(
        f"/api/v1/patients/{patient.id}/records",
        json={"appointmentId": 99999, "diagnosis": "Cárie"},
        headers=auth_headers(dentist.profile),
    )
    assert response.status_code == 404

    response = await client.post(
        f"/api/v1/patients/{patient.id}/documents",
        json={"appointmentId": foreign.id, "fileName": "raio-x.png", "fileUrl": "https://files.example.com/raio-x.png"},
        headers=auth_headers(receptionist),
    )
    assert response.status_code == 400

    response = await client.post(
        f"/api/v1/patients/{patient.id}/records",
        json={"appointmentId": own.id, "diagnosis": "Cárie"},
        headers=auth_headers(dentist.profile),
    )
    assert response.status_code == 201
    assert response.json()["appointment_id"] == own.id

    response = await client.get(f"/api/v1/patients/{patient.id}/records", headers=auth_headers(patient.profile))
    assert len(response.json()) == 1


async def test_notification_log_is_scoped(client, factory, db):
    patient = factory.patient()
    other = factory.patient(first_name="Ana", phone="11 91111-2222")
    receptionist = factory.staff(UserRole.receptionist)
    dispatcher.queue(db, patient, templates.GENERAL_INFO, message="Para Maria")
    dispatcher.queue(db, other, templates.GENERAL_INFO, message="Para Ana")
    dispatcher.queue(db, other, templates.GENERAL_INFO, message="Outra para Ana")
    db.commit()

    response = await client.get(
        "/api/v1/notifications", params={"patientId": other.id}, headers=auth_headers(patient.profile)
    )
    assert response.status_code == 200
    assert [n["message"] for n in response.json()] == ["Para Maria"]

    response = await client.get(
        "/api/v1/notifications", params={"patientId": other.id}, headers=auth_headers(receptionist)
    )
    assert response.status_code == 200
    assert {n["patient_id"] for n in response.json()} == {other.id}
    assert len(response.json()) == 2

    response = await client.get("/api/v1/notifications", headers=auth_headers(receptionist))
    assert len(response.json()) == 3

    response = await client.get("/api/v1/notifications")
    assert response.status_code == 401


async def test_faq(client, factory, gateway):
    patient = factory.patient()
    receptionist = factory.staff(UserRole.receptionist)

    response = await client.post("/api/v1/faq", json={
        "question": "Vocês aceitam convênio?", "answer": "Sim, trabalhamos com os principais convênios.",
    }, headers=auth_headers(receptionist))
    assert response.status_code == 201
    faq_id = response.json()["id"]

    response = await client.get("/api/v1/faq", headers=auth_headers(patient.profile))
    assert len(response.json()) == 1

    response = await client.post(
        f"/api/v1/faq/{faq_id}/send", json={"patientId": patient.id}, headers=auth_headers(receptionist)
    )
    assert response.status_code == 200
    assert "Vocês aceitam convênio?" in gateway.calls[0][1]


async def test_reports_are_front_desk_only(client, factory):
    receptionist = factory.staff(UserRole.receptionist)
    dentist = factory.dentist()

    response = await client.get("/api/v1/reports", params={"period": "quarter"}, headers=auth_headers(receptionist))
    assert response.status_code == 200
    assert response.json()["attendance_rate"] == 0.0

    response = await client.get("/api/v1/reports", params={"period": "week"}, headers=auth_headers(receptionist))
    assert response.status_code == 400

    response = await client.get("/api/v1/reports", headers=auth_headers(dentist.profile))
    assert response.status_code == 403


async def test_retry_pending(client, factory, db, gateway):
    patient = factory.patient()
    dispatcher.queue(db, patient, templates.GENERAL_INFO, message="Lembrete")
    db.commit()

    response = await client.post(
        "/api/v1/notifications/retry-pending", headers={"Authorization": "Bearer test-cron-secret"}
    )
    assert response.status_code == 200
    assert response.json()["deliveredCount"] == 1
    assert len(gateway.calls) == 1


async def test_staff_profiles_and_availability(client, factory):
    admin = factory.staff(UserRole.admin)
    response = await client.post("/api/v1/profiles", json={
        "email": "paula@example.com", "password": "senha1234", "role": "dentist",
        "firstName": "Paula", "registrationNumber": "CRO-999",
    }, headers=auth_headers(admin))
    assert response.status_code == 201
    dentist_id = response.json()["id"]
    assert response.json()["dentist"]["registration_number"] == "CRO-999"

    response = await client.patch(
        f"/api/v1/dentists/{dentist_id}/availability", json={"availabilityStatus": "on_leave"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    assert response.json()["availability_status"] == "on_leave"

    response = await client.get("/api/v1/dentists", headers=auth_headers(admin))
    assert [d["full_name"] for d in response.json()] == ["Paula"]
