# dentalclinic/routers/payments.py
from fastapi import APIRouter, Depends, BackgroundTasks, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import crud, schemas, security
from ..database import get_db
from ..security import AuthContext
from ..services import payment_service
from ..services.notification_service import dispatcher

import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Payments"],
    responses={404: {"description": "Not found"}},
)

@router.post("/payments/create", response_model=schemas.PaymentCreated)
async def create_payment(
    payment: schemas.PaymentCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_staff)
):
    result = payment_service.register_payment(db, auth, payment)
    if result.notification_id is not None:
        background_tasks.add_task(dispatcher.deliver, result.notification_id)
    return {"success": True, "payment_id": result.payment.id}

@router.patch("/payments/{payment_id}/status", response_model=schemas.PaymentResponse)
def update_payment_status(
    payment_id: int,
    update: schemas.PaymentStatusUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_staff)
):
    return payment_service.update_status(db, payment_id, update.status)

@router.get("/payments", response_model=List[schemas.PaymentResponse])
def read_payments(
    patient_id: Optional[int] = Query(None, alias="patientId"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.get_auth_context)
):
    if not auth.is_staff:
        patient_id = auth.user_id
    return crud.get_payments(db, patient_id=patient_id)

@router.post("/budgets", response_model=schemas.BudgetResponse, status_code=status.HTTP_201_CREATED)
def create_budget(
    budget: schemas.BudgetCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_staff)
):
    crud.get_patient_or_404(db, budget.patient_id)
    db_budget = crud.create_budget(db, budget)
    logger.info(f"Budget {db_budget.id} created for patient {budget.patient_id} by {auth.user_id}")
    return db_budget

@router.get("/budgets", response_model=List[schemas.BudgetResponse])
def read_budgets(
    patient_id: Optional[int] = Query(None, alias="patientId"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.get_auth_context)
):
    if not auth.is_staff:
        patient_id = auth.user_id
    return crud.get_budgets(db, patient_id=patient_id)
