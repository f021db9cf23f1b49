# dentalclinic/services/reminder_service.py
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from .. import crud, models
from ..exceptions import ClinicError
from . import notification_templates as templates
from .notification_service import dispatcher

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    candidates: int
    sent_count: int


async def send_confirmation_reminders(db: Session, today: Optional[date] = None) -> SweepResult:
    """Ask every patient with an unconfirmed appointment tomorrow to confirm it.

    The dispatcher marks an appointment ``confirmation_sent`` only once the
    gateway acknowledged its message. A failure for one appointment is logged
    and the sweep moves on.
    """
    target = (today or date.today()) + timedelta(days=1)
    appointments = crud.get_unconfirmed_appointments_on(db, target)
    logger.info(f"Reminder sweep for {target}: {len(appointments)} unconfirmed appointments")

    sent_count = 0
    for appointment in appointments:
        patient = appointment.patient
        if not patient or not patient.profile.phone:
            continue
        try:
            notification = await dispatcher.dispatch(
                db, patient, templates.CONFIRMATION_REQUEST,
                {
                    "patient_name": patient.profile.first_name,
                    "date": templates.format_date(appointment.appointment_date),
                    "time": appointment.appointment_time,
                },
                appointment_id=appointment.id,
            )
        except ClinicError as e:
            db.rollback()
            logger.warning(f"Skipping reminder for appointment {appointment.id}: {e.message}")
            continue

        if notification.status == models.NotificationStatus.sent:
            sent_count += 1
        else:
            logger.warning(f"Reminder for appointment {appointment.id} was not delivered: {notification.last_error}")

    logger.info(f"Reminder sweep for {target} finished: {sent_count} sent")
    return SweepResult(candidates=len(appointments), sent_count=sent_count)
