# dentalclinic/services/payment_service.py
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..exceptions import ConflictError, NotFoundError, ValidationError
from ..models import PaymentMethod, PaymentStatus
from ..security import AuthContext
from . import notification_templates as templates
from .notification_service import dispatcher

logger = logging.getLogger(__name__)

# Allowed status moves; anything else is a conflict
PAYMENT_TRANSITIONS = {
    PaymentStatus.pending: {PaymentStatus.completed, PaymentStatus.failed},
    PaymentStatus.completed: {PaymentStatus.refunded},
    PaymentStatus.failed: set(),
    PaymentStatus.refunded: set(),
}


@dataclass
class PaymentResult:
    payment: models.Payment
    notification_id: Optional[int] = None


def register_payment(db: Session, auth: AuthContext, data: schemas.PaymentCreate) -> PaymentResult:
    """Record a payment. Cash is settled on the spot and receipted over WhatsApp."""
    patient = crud.get_patient(db, data.patient_id)
    if not patient:
        raise NotFoundError("Patient not found")
    budget = crud.get_budget(db, data.budget_id)
    if not budget:
        raise NotFoundError("Budget not found")
    if budget.patient_id != patient.id:
        raise ValidationError("Budget does not belong to this patient")

    is_cash = data.payment_method == PaymentMethod.cash
    payment = models.Payment(
        budget_id=budget.id,
        patient_id=patient.id,
        amount=data.amount,
        payment_method=data.payment_method,
        status=PaymentStatus.completed if is_cash else PaymentStatus.pending,
        payment_date=datetime.now(timezone.utc) if is_cash else None,
        registered_by=auth.user_id,
    )
    db.add(payment)
    db.flush()

    notification_id = None
    if is_cash and patient.profile.phone:
        notification = dispatcher.queue(
            db, patient, templates.PAYMENT_RECEIPT,
            {"patient_name": patient.profile.first_name, "amount": templates.format_amount(data.amount)},
        )
        notification_id = notification.id

    db.commit()
    db.refresh(payment)
    logger.info(f"Payment {payment.id} ({payment.payment_method.value}, {payment.status.value}) registered by {auth.user_id}")
    return PaymentResult(payment, notification_id)


def update_status(db: Session, payment_id: int, new_status: PaymentStatus) -> models.Payment:
    payment = crud.get_payment(db, payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    if new_status not in PAYMENT_TRANSITIONS[payment.status]:
        raise ConflictError(f"Cannot change a {payment.status.value} payment to {new_status.value}")

    payment.status = new_status
    if new_status == PaymentStatus.completed:
        payment.payment_date = datetime.now(timezone.utc)
    db.commit()
    db.refresh(payment)
    logger.info(f"Payment {payment.id} moved to {new_status.value}")
    return payment
