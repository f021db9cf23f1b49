# dentalclinic/routers/faq.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas, security
from ..database import get_db
from ..exceptions import NotFoundError, UpstreamError
from ..models import NotificationStatus
from ..security import AuthContext
from ..services import notification_templates as templates
from ..services.notification_service import dispatcher

router = APIRouter(
    tags=["FAQ"],
    responses={404: {"description": "Not found"}},
)

@router.get("/faq", response_model=List[schemas.FaqResponse])
def read_faqs(db: Session = Depends(get_db), auth: AuthContext = Depends(security.get_auth_context)):
    return crud.get_faqs(db)

@router.post("/faq", response_model=schemas.FaqResponse, status_code=status.HTTP_201_CREATED)
def create_faq(
    faq: schemas.FaqCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_front_desk)
):
    return crud.create_faq(db, faq)

@router.post("/faq/{faq_id}/send", response_model=schemas.SendResult)
async def send_faq(
    faq_id: int,
    body: schemas.FaqSendRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_staff)
):
    """Answer a patient's question over WhatsApp with a stored FAQ entry."""
    faq = crud.get_faq(db, faq_id)
    if not faq:
        raise NotFoundError("FAQ entry not found")
    patient = crud.get_patient_or_404(db, body.patient_id)

    notification = await dispatcher.dispatch(
        db, patient, templates.FAQ_RESPONSE,
        {"patient_name": patient.profile.first_name, "question": faq.question, "answer": faq.answer},
    )
    if notification.status != NotificationStatus.sent:
        raise UpstreamError(f"Failed to send WhatsApp message: {notification.last_error}")
    return {"success": True, "message_id": notification.gateway_message_id, "notification_id": notification.id}
