# dentalclinic/services/appointment_service.py
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..config import get_settings
from ..exceptions import ConflictError, ForbiddenError, ValidationError, NotFoundError
from ..models import AppointmentStatus
from ..security import AuthContext
from . import notification_templates as templates
from .notification_service import dispatcher
from .whatsapp_service import normalize_phone

logger = logging.getLogger(__name__)


@dataclass
class LifecycleResult:
    """An appointment after a committed transition, plus the notification queued with it."""
    appointment: models.Appointment
    notification_id: Optional[int] = None


def slot_times() -> List[str]:
    """The bookable "HH:MM" grid for one day."""
    settings = get_settings()
    times = []
    minutes = settings.clinic_open_hour * 60
    while minutes < settings.clinic_close_hour * 60:
        times.append(f"{minutes // 60:02d}:{minutes % 60:02d}")
        minutes += settings.slot_minutes
    return times


def validate_slot(appointment_date: date, appointment_time: str) -> None:
    if appointment_date.weekday() >= 5:
        raise ValidationError("Appointments can only be booked on business days")
    if appointment_time not in slot_times():
        settings = get_settings()
        raise ValidationError(
            f"Time must be a {settings.slot_minutes}-minute slot between "
            f"{settings.clinic_open_hour:02d}:00 and {settings.clinic_close_hour:02d}:00"
        )


def available_slots(db: Session, dentist_id: int, for_date: date) -> List[str]:
    if not crud.get_dentist(db, dentist_id):
        raise NotFoundError("Dentist not found")
    if for_date.weekday() >= 5:
        return []
    booked = set(crud.get_booked_times(db, dentist_id, for_date))
    return [slot for slot in slot_times() if slot not in booked]


def _ensure_can_view(auth: AuthContext, appointment: models.Appointment) -> None:
    if auth.role == models.UserRole.patient and appointment.patient_id != auth.user_id:
        raise ForbiddenError("Access denied")
    if auth.role == models.UserRole.dentist and appointment.dentist_id != auth.user_id:
        raise ForbiddenError("Access denied")


def list_appointments(
    db: Session,
    auth: AuthContext,
    status: Optional[AppointmentStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[models.Appointment]:
    patient_id = auth.user_id if auth.role == models.UserRole.patient else None
    dentist_id = auth.user_id if auth.role == models.UserRole.dentist else None
    return crud.get_appointments(
        db, patient_id=patient_id, dentist_id=dentist_id,
        status=status, start_date=start_date, end_date=end_date,
    )


def create_appointment(db: Session, auth: AuthContext, data: schemas.AppointmentCreate) -> LifecycleResult:
    """Book a slot.

    The live-slot unique index is the source of truth for availability; a
    violating insert is reported as a conflict.
    """
    if auth.role == models.UserRole.patient and auth.user_id != data.patient_id:
        raise ForbiddenError("Patients can only book appointments for themselves")

    validate_slot(data.appointment_date, data.appointment_time)

    patient = crud.get_patient(db, data.patient_id)
    if not patient:
        raise NotFoundError("Patient not found")
    dentist = crud.get_dentist(db, data.dentist_id)
    if not dentist:
        raise NotFoundError("Dentist not found")
    procedure = crud.get_procedure(db, data.procedure_id)
    if not procedure:
        raise NotFoundError("Procedure not found")

    appointment = models.Appointment(
        patient_id=patient.id,
        dentist_id=dentist.id,
        procedure_id=procedure.id,
        appointment_date=data.appointment_date,
        appointment_time=data.appointment_time,
        location=data.location or get_settings().clinic_default_location,
        notes=data.notes,
        status=AppointmentStatus.scheduled,
    )
    db.add(appointment)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        logger.info(
            f"Slot conflict for dentist {data.dentist_id} on {data.appointment_date} at {data.appointment_time}"
        )
        raise ConflictError("Time slot not available")

    notification_id = None
    if patient.profile.phone:
        notification = dispatcher.queue(
            db, patient, templates.APPOINTMENT_REMINDER,
            {
                "patient_name": patient.profile.first_name,
                "date": templates.format_date(appointment.appointment_date),
                "time": appointment.appointment_time,
                "dentist_name": dentist.profile.full_name,
            },
            appointment_id=appointment.id,
        )
        notification_id = notification.id

    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} created by profile {auth.user_id}")
    return LifecycleResult(appointment, notification_id)


def confirm_by_patient(db: Session, auth: AuthContext, appointment_id: int) -> LifecycleResult:
    appointment = crud.get_appointment_or_404(db, appointment_id)
    if auth.user_id != appointment.patient_id:
        raise ForbiddenError("Access denied")
    if appointment.status == AppointmentStatus.cancelled:
        raise ConflictError("Cancelled appointments cannot be confirmed")

    appointment.confirmed_by_patient = True
    appointment.confirmed_at = datetime.now(timezone.utc)
    notification = dispatcher.queue(
        db, appointment.patient, templates.PATIENT_CONFIRMED,
        channel=models.NotificationChannel.in_app,
        appointment_id=appointment.id,
    )
    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} confirmed by patient {auth.user_id}")
    return LifecycleResult(appointment, notification.id)


def confirmation_args(appointment: models.Appointment) -> dict:
    """Fields for the dentist confirmation message."""
    return {
        "date": templates.format_date(appointment.appointment_date),
        "time": appointment.appointment_time,
        "location": appointment.location or get_settings().clinic_default_location,
        "procedure_name": appointment.procedure.name if appointment.procedure else "Procedimento",
        "dentist_name": appointment.dentist.profile.full_name if appointment.dentist else "Dentista",
    }


def _ensure_can_confirm(auth: AuthContext, appointment: models.Appointment) -> None:
    if auth.role == models.UserRole.dentist:
        if appointment.dentist_id != auth.user_id:
            raise ForbiddenError("Dentists can only confirm their own appointments")
    elif not auth.has_role("receptionist", "admin"):
        raise ForbiddenError("Access denied")


def confirmation_preview(db: Session, auth: AuthContext, appointment_id: int) -> schemas.ConfirmationPreview:
    """Render the dentist confirmation message without changing anything."""
    appointment = crud.get_appointment_or_404(db, appointment_id)
    _ensure_can_confirm(auth, appointment)
    phone = None
    if appointment.patient.profile.phone:
        phone = normalize_phone(appointment.patient.profile.phone)
    message = templates.render(templates.APPOINTMENT_CONFIRMED, **confirmation_args(appointment))
    return schemas.ConfirmationPreview(appointment_id=appointment.id, phone=phone, message=message)


def confirm_by_dentist(db: Session, auth: AuthContext, appointment_id: int) -> LifecycleResult:
    appointment = crud.get_appointment_or_404(db, appointment_id)
    _ensure_can_confirm(auth, appointment)
    if appointment.status != AppointmentStatus.scheduled:
        raise ConflictError(f"Cannot confirm an appointment that is {appointment.status.value}")

    appointment.status = AppointmentStatus.confirmed
    appointment.confirmed_by_dentist_at = datetime.now(timezone.utc)

    notification_id = None
    if appointment.patient.profile.phone:
        notification = dispatcher.queue(
            db, appointment.patient, templates.APPOINTMENT_CONFIRMED,
            confirmation_args(appointment),
            appointment_id=appointment.id,
        )
        notification_id = notification.id
    else:
        logger.warning(f"Appointment {appointment.id} confirmed without a patient phone; no WhatsApp queued")

    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} confirmed by profile {auth.user_id}")
    return LifecycleResult(appointment, notification_id)


async def send_confirmation_message(db: Session, auth: AuthContext, appointment_id: int, phone: Optional[str] = None) -> models.Notification:
    """Send the "appointment confirmed" WhatsApp for an appointment right away.

    ``phone`` overrides the number on the patient profile.
    """
    appointment = crud.get_appointment_or_404(db, appointment_id)
    _ensure_can_confirm(auth, appointment)
    return await dispatcher.dispatch(
        db, appointment.patient, templates.APPOINTMENT_CONFIRMED,
        confirmation_args(appointment),
        appointment_id=appointment.id,
        phone=phone,
    )


def cancel(db: Session, auth: AuthContext, appointment_id: int) -> LifecycleResult:
    appointment = crud.get_appointment_or_404(db, appointment_id)
    if auth.role == models.UserRole.patient and appointment.patient_id != auth.user_id:
        raise ForbiddenError("Access denied")
    if auth.role == models.UserRole.dentist and appointment.dentist_id != auth.user_id:
        raise ForbiddenError("Access denied")

    if appointment.status == AppointmentStatus.cancelled:
        return LifecycleResult(appointment)
    if appointment.status.is_terminal and not auth.is_admin:
        raise ConflictError(f"Only an administrator can cancel an appointment that is {appointment.status.value}")

    if appointment.status.is_terminal:
        logger.warning(f"Admin {auth.user_id} overriding {appointment.status.value} appointment {appointment.id}")
    appointment.status = AppointmentStatus.cancelled
    appointment.cancelled_at = datetime.now(timezone.utc)
    appointment.cancelled_by = auth.user_id
    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} cancelled by profile {auth.user_id}")
    return LifecycleResult(appointment)


def _close(db: Session, auth: AuthContext, appointment_id: int, new_status: AppointmentStatus) -> models.Appointment:
    appointment = crud.get_appointment_or_404(db, appointment_id)
    if not auth.is_staff:
        raise ForbiddenError("Access denied")
    if auth.role == models.UserRole.dentist and appointment.dentist_id != auth.user_id:
        raise ForbiddenError("Access denied")
    if appointment.status not in (AppointmentStatus.scheduled, AppointmentStatus.confirmed):
        raise ConflictError(f"Cannot mark a {appointment.status.value} appointment as {new_status.value}")
    appointment.status = new_status
    return appointment


def mark_completed(db: Session, auth: AuthContext, appointment_id: int) -> LifecycleResult:
    appointment = _close(db, auth, appointment_id, AppointmentStatus.completed)
    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} completed")
    return LifecycleResult(appointment)


def mark_no_show(db: Session, auth: AuthContext, appointment_id: int) -> LifecycleResult:
    appointment = _close(db, auth, appointment_id, AppointmentStatus.no_show)
    notification_id = None
    if appointment.patient.profile.phone:
        notification = dispatcher.queue(
            db, appointment.patient, templates.NO_SHOW_NOTIFICATION,
            {"patient_name": appointment.patient.profile.first_name},
            appointment_id=appointment.id,
        )
        notification_id = notification.id
    db.commit()
    db.refresh(appointment)
    logger.info(f"Appointment {appointment.id} marked as no-show")
    return LifecycleResult(appointment, notification_id)


def get_for_caller(db: Session, auth: AuthContext, appointment_id: int) -> models.Appointment:
    appointment = crud.get_appointment_or_404(db, appointment_id)
    _ensure_can_view(auth, appointment)
    return appointment
