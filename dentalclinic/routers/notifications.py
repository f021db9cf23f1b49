# dentalclinic/routers/notifications.py
from fastapi import APIRouter, Depends, Request, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import crud, schemas, security, models
from ..database import get_db
from ..exceptions import UpstreamError, ValidationError
from ..limiter import limiter
from ..security import AuthContext
from ..services import appointment_service, reminder_service
from ..services import notification_templates as templates
from ..services.notification_service import dispatcher

import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Notifications"],
    responses={404: {"description": "Not found"}},
)

def _sent_or_502(notification: models.Notification) -> dict:
    if notification.status != models.NotificationStatus.sent:
        raise UpstreamError(f"Failed to send WhatsApp message: {notification.last_error}")
    return {
        "success": True,
        "message_id": notification.gateway_message_id,
        "notification_id": notification.id,
    }

@router.post("/whatsapp/send", response_model=schemas.SendResult)
@limiter.limit("20/minute")
async def send_whatsapp(
    body: schemas.WhatsAppSendRequest,
    request: Request,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_staff)
):
    """Send a free-text or templated WhatsApp message to a patient."""
    patient = crud.get_patient_or_404(db, body.patient_id)
    if body.message is None and body.template is None:
        raise ValidationError("Either message or template is required")

    kind = body.template or body.type or templates.GENERAL_INFO
    notification = await dispatcher.dispatch(
        db, patient, kind, body.template_args,
        appointment_id=body.appointment_id,
        message=body.message if body.template is None else None,
    )
    logger.info(f"Profile {auth.user_id} sent {kind} WhatsApp to patient {patient.id}")
    return _sent_or_502(notification)

@router.post("/send-whatsapp", response_model=schemas.SendResult)
async def send_appointment_whatsapp(
    body: schemas.AppointmentWhatsAppRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_staff)
):
    """Send the appointment confirmation message for an appointment."""
    notification = await appointment_service.send_confirmation_message(
        db, auth, body.appointment_id, phone=body.patient_phone
    )
    return _sent_or_502(notification)

@router.get("/notifications", response_model=List[schemas.NotificationResponse])
def read_notifications(
    patient_id: Optional[int] = Query(None, alias="patientId"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.get_auth_context)
):
    if not auth.is_staff:
        patient_id = auth.user_id
    return crud.get_notifications(db, patient_id=patient_id)

@router.post("/notifications/send-reminders", response_model=schemas.ReminderSweepResult,
             dependencies=[Depends(security.verify_cron_secret)])
async def send_reminders(db: Session = Depends(get_db)):
    """Batch job: ask tomorrow's unconfirmed patients to confirm."""
    result = await reminder_service.send_confirmation_reminders(db)
    return {
        "success": True,
        "sent_count": result.sent_count,
        "message": f"{result.sent_count} confirmation reminders sent",
    }

@router.post("/notifications/retry-pending", response_model=schemas.RetryResult,
             dependencies=[Depends(security.verify_cron_secret)])
async def retry_pending(db: Session = Depends(get_db)):
    delivered = await dispatcher.retry_undelivered(db)
    return {"success": True, "delivered_count": delivered}
