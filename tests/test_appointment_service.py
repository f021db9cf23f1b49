# tests/test_appointment_service.py
from datetime import date

import pytest

from dentalclinic import models, schemas
from dentalclinic.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from dentalclinic.models import AppointmentStatus, NotificationChannel, NotificationStatus, UserRole
from dentalclinic.services import appointment_service
from dentalclinic.services import notification_templates as templates

from conftest import auth_for

MONDAY = date(2025, 3, 10)
SATURDAY = date(2025, 3, 15)


@pytest.fixture
def clinic(factory):
    patient = factory.patient()
    dentist = factory.dentist()
    procedure = factory.procedure()
    return patient, dentist, procedure


def _booking(patient, dentist, procedure, when=MONDAY, at="09:00"):
    return schemas.AppointmentCreate(
        patientId=patient.id, dentistId=dentist.id, procedureId=procedure.id,
        appointmentDate=when, appointmentTime=at,
    )


def test_slot_grid():
    slots = appointment_service.slot_times()
    assert slots[0] == "08:00"
    assert slots[-1] == "17:30"
    assert len(slots) == 20


def test_create_appointment_queues_reminder(db, clinic):
    patient, dentist, procedure = clinic
    result = appointment_service.create_appointment(db, auth_for(patient.profile), _booking(patient, dentist, procedure))

    appointment = result.appointment
    assert appointment.status == AppointmentStatus.scheduled
    assert appointment.location
    notification = db.get(models.Notification, result.notification_id)
    assert notification.notification_type == templates.APPOINTMENT_REMINDER
    assert notification.status == NotificationStatus.pending
    assert notification.recipient == "5511987654321"
    assert notification.appointment_id == appointment.id


def test_double_booking_is_a_conflict(db, factory, clinic):
    patient, dentist, procedure = clinic
    other = factory.patient(first_name="Ana", phone="11 91111-2222")
    appointment_service.create_appointment(db, auth_for(patient.profile), _booking(patient, dentist, procedure))

    with pytest.raises(ConflictError):
        appointment_service.create_appointment(db, auth_for(other.profile), _booking(other, dentist, procedure))

    assert db.query(models.Appointment).count() == 1


def test_same_time_with_another_dentist_is_allowed(db, factory, clinic):
    patient, dentist, procedure = clinic
    second_dentist = factory.dentist(first_name="Paula")
    appointment_service.create_appointment(db, auth_for(patient.profile), _booking(patient, dentist, procedure))
    appointment_service.create_appointment(db, auth_for(patient.profile), _booking(patient, second_dentist, procedure))
    assert db.query(models.Appointment).count() == 2


def test_cancelled_slot_can_be_booked_again(db, clinic):
    patient, dentist, procedure = clinic
    auth = auth_for(patient.profile)
    first = appointment_service.create_appointment(db, auth, _booking(patient, dentist, procedure))
    appointment_service.cancel(db, auth, first.appointment.id)

    second = appointment_service.create_appointment(db, auth, _booking(patient, dentist, procedure))
    assert second.appointment.id != first.appointment.id


@pytest.mark.parametrize("when, at", [(SATURDAY, "09:00"), (MONDAY, "08:15"), (MONDAY, "18:00"), (MONDAY, "07:30")])
def test_outside_business_hours_is_rejected(db, clinic, when, at):
    patient, dentist, procedure = clinic
    with pytest.raises(ValidationError):
        appointment_service.create_appointment(db, auth_for(patient.profile), _booking(patient, dentist, procedure, when, at))
    assert db.query(models.Appointment).count() == 0


def test_patient_cannot_book_for_someone_else(db, factory, clinic):
    patient, dentist, procedure = clinic
    other = factory.patient(first_name="Ana")
    with pytest.raises(ForbiddenError):
        appointment_service.create_appointment(db, auth_for(other.profile), _booking(patient, dentist, procedure))


def test_receptionist_can_book_for_a_patient(db, factory, clinic):
    patient, dentist, procedure = clinic
    receptionist = factory.staff(UserRole.receptionist)
    result = appointment_service.create_appointment(db, auth_for(receptionist), _booking(patient, dentist, procedure))
    assert result.appointment.patient_id == patient.id


def test_unknown_procedure_is_not_found(db, clinic):
    patient, dentist, procedure = clinic
    data = _booking(patient, dentist, procedure)
    data.procedure_id = procedure.id + 100
    with pytest.raises(NotFoundError):
        appointment_service.create_appointment(db, auth_for(patient.profile), data)


def test_booking_without_phone_queues_nothing(db, factory, clinic):
    _, dentist, procedure = clinic
    patient = factory.patient(phone=None)
    result = appointment_service.create_appointment(db, auth_for(patient.profile), _booking(patient, dentist, procedure))
    assert result.notification_id is None
    assert db.query(models.Notification).count() == 0


def test_available_slots(db, factory, clinic):
    patient, dentist, procedure = clinic
    factory.appointment(patient, dentist, procedure, MONDAY, "09:00")
    factory.appointment(patient, dentist, procedure, MONDAY, "10:00", status=AppointmentStatus.cancelled)

    slots = appointment_service.available_slots(db, dentist.id, MONDAY)
    assert "09:00" not in slots
    assert "10:00" in slots
    assert len(slots) == 19
    assert appointment_service.available_slots(db, dentist.id, SATURDAY) == []
    with pytest.raises(NotFoundError):
        appointment_service.available_slots(db, dentist.id + 100, MONDAY)


def test_confirm_by_patient(db, factory, clinic):
    patient, dentist, procedure = clinic
    appointment = factory.appointment(patient, dentist, procedure, MONDAY)

    result = appointment_service.confirm_by_patient(db, auth_for(patient.profile), appointment.id)

    assert result.appointment.confirmed_by_patient is True
    assert result.appointment.confirmed_at is not None
    notification = db.get(models.Notification, result.notification_id)
    assert notification.channel == NotificationChannel.in_app
    assert notification.status == NotificationStatus.sent


def test_confirm_by_other_patient_is_forbidden(db, factory, clinic):
    patient, dentist, procedure = clinic
    appointment = factory.appointment(patient, dentist, procedure, MONDAY)
    other = factory.patient(first_name="Ana")

    with pytest.raises(ForbiddenError):
        appointment_service.confirm_by_patient(db, auth_for(other.profile), appointment.id)

    db.refresh(appointment)
    assert appointment.confirmed_by_patient is False


def test_confirm_missing_appointment_is_not_found(db, clinic):
    patient, _, _ = clinic
    with pytest.raises(NotFoundError):
        appointment_service.confirm_by_patient(db, auth_for(patient.profile), 999)


def test_confirm_by_dentist(db, factory, clinic):
    patient, dentist, procedure = clinic
    appointment = factory.appointment(patient, dentist, procedure, MONDAY, location="Sala 2")

    result = appointment_service.confirm_by_dentist(db, auth_for(dentist.profile), appointment.id)

    assert result.appointment.status == AppointmentStatus.confirmed
    assert result.appointment.confirmed_by_dentist_at is not None
    notification = db.get(models.Notification, result.notification_id)
    assert notification.notification_type == templates.APPOINTMENT_CONFIRMED
    assert notification.status == NotificationStatus.pending
    assert "Sala 2" in notification.message
    assert "10/03/2025" in notification.message

    with pytest.raises(ConflictError):
        appointment_service.confirm_by_dentist(db, auth_for(dentist.profile), appointment.id)


def test_dentist_cannot_confirm_colleagues_appointment(db, factory, clinic):
    patient, dentist, procedure = clinic
    colleague = factory.dentist(first_name="Paula")
    appointment = factory.appointment(patient, dentist, procedure, MONDAY)
    with pytest.raises(ForbiddenError):
        appointment_service.confirm_by_dentist(db, auth_for(colleague.profile), appointment.id)


def test_confirmation_preview_has_no_side_effects(db, factory, clinic):
    patient, dentist, procedure = clinic
    appointment = factory.appointment(patient, dentist, procedure, MONDAY)
    receptionist = factory.staff(UserRole.receptionist)

    preview = appointment_service.confirmation_preview(db, auth_for(receptionist), appointment.id)

    assert preview.phone == "5511987654321"
    assert "Sua consulta foi confirmada" in preview.message
    db.refresh(appointment)
    assert appointment.status == AppointmentStatus.scheduled
    assert db.query(models.Notification).count() == 0


def test_cancel_rules(db, factory, clinic):
    patient, dentist, procedure = clinic
    receptionist = factory.staff(UserRole.receptionist)
    admin = factory.staff(UserRole.admin)
    completed = factory.appointment(patient, dentist, procedure, MONDAY, status=AppointmentStatus.completed)

    with pytest.raises(ConflictError):
        appointment_service.cancel(db, auth_for(receptionist), completed.id)

    result = appointment_service.cancel(db, auth_for(admin), completed.id)
    assert result.appointment.status == AppointmentStatus.cancelled
    assert result.appointment.cancelled_by == admin.id

    again = appointment_service.cancel(db, auth_for(patient.profile), completed.id)
    assert again.appointment.cancelled_by == admin.id


def test_patient_cannot_cancel_someone_elses_appointment(db, factory, clinic):
    patient, dentist, procedure = clinic
    other = factory.patient(first_name="Ana")
    appointment = factory.appointment(patient, dentist, procedure, MONDAY)
    with pytest.raises(ForbiddenError):
        appointment_service.cancel(db, auth_for(other.profile), appointment.id)


def test_complete_and_no_show(db, factory, clinic):
    patient, dentist, procedure = clinic
    first = factory.appointment(patient, dentist, procedure, MONDAY, "09:00")
    second = factory.appointment(patient, dentist, procedure, MONDAY, "09:30")

    done = appointment_service.mark_completed(db, auth_for(dentist.profile), first.id)
    assert done.appointment.status == AppointmentStatus.completed

    missed = appointment_service.mark_no_show(db, auth_for(dentist.profile), second.id)
    assert missed.appointment.status == AppointmentStatus.no_show
    notification = db.get(models.Notification, missed.notification_id)
    assert notification.notification_type == templates.NO_SHOW_NOTIFICATION

    with pytest.raises(ConflictError):
        appointment_service.mark_completed(db, auth_for(dentist.profile), second.id)
    with pytest.raises(ForbiddenError):
        appointment_service.mark_completed(db, auth_for(patient.profile), first.id)


def test_list_appointments_is_scoped_by_role(db, factory, clinic):
    patient, dentist, procedure = clinic
    other = factory.patient(first_name="Ana")
    colleague = factory.dentist(first_name="Paula")
    factory.appointment(patient, dentist, procedure, MONDAY, "09:00")
    factory.appointment(other, colleague, procedure, MONDAY, "09:00")
    receptionist = factory.staff(UserRole.receptionist)

    assert len(appointment_service.list_appointments(db, auth_for(patient.profile))) == 1
    assert len(appointment_service.list_appointments(db, auth_for(colleague.profile))) == 1
    assert len(appointment_service.list_appointments(db, auth_for(receptionist))) == 2
    assert appointment_service.list_appointments(
        db, auth_for(receptionist), status=AppointmentStatus.cancelled
    ) == []
