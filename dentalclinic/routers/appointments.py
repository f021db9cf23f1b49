# dentalclinic/routers/appointments.py
# Appointment lifecycle. Notifications queued by a transition are delivered
# after the response in a background task.

from fastapi import APIRouter, Depends, Request, BackgroundTasks, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from .. import crud, schemas, security
from ..database import get_db
from ..limiter import limiter
from ..models import AppointmentStatus
from ..security import AuthContext
from ..services import appointment_service
from ..services.notification_service import dispatcher

import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Appointments"],
    responses={404: {"description": "Not found"}},
)

@router.post("/appointments/create", response_model=schemas.AppointmentCreated)
@limiter.limit("10/minute")
async def create_appointment(
    appointment: schemas.AppointmentCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.get_auth_context)
):
    result = appointment_service.create_appointment(db, auth, appointment)
    if result.notification_id is not None:
        background_tasks.add_task(dispatcher.deliver, result.notification_id)
    return {"success": True, "appointment": result.appointment.id}

@router.get("/appointments/available-slots", response_model=schemas.AvailableSlotsResponse)
def read_available_slots(
    dentist_id: int = Query(..., alias="dentistId"),
    for_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.get_auth_context)
):
    slots = appointment_service.available_slots(db, dentist_id, for_date)
    return {"dentist_id": dentist_id, "date": for_date, "slots": slots}

@router.get("/appointments", response_model=List[schemas.AppointmentResponse])
def read_appointments(
    status: Optional[AppointmentStatus] = None,
    start_date: Optional[date] = Query(None, alias="from"),
    end_date: Optional[date] = Query(None, alias="to"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.get_auth_context)
):
    appointments = appointment_service.list_appointments(db, auth, status, start_date, end_date)
    return [crud.to_appointment_response(a) for a in appointments]

@router.post("/appointments/confirm", response_model=schemas.AppointmentResponse)
def confirm_appointment(
    body: schemas.AppointmentConfirm,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.get_auth_context)
):
    """Patient-side confirmation of attendance."""
    result = appointment_service.confirm_by_patient(db, auth, body.appointment_id)
    return crud.to_appointment_response(result.appointment)

@router.get("/appointments/{appointment_id}", response_model=schemas.AppointmentResponse)
def read_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.get_auth_context)
):
    return crud.to_appointment_response(appointment_service.get_for_caller(db, auth, appointment_id))

@router.get("/appointments/{appointment_id}/confirmation-preview", response_model=schemas.ConfirmationPreview)
def preview_dentist_confirmation(
    appointment_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_staff)
):
    return appointment_service.confirmation_preview(db, auth, appointment_id)

@router.post("/appointments/{appointment_id}/confirm-by-dentist", response_model=schemas.DentistConfirmResult)
async def confirm_by_dentist(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_staff)
):
    result = appointment_service.confirm_by_dentist(db, auth, appointment_id)
    if result.notification_id is not None:
        background_tasks.add_task(dispatcher.deliver, result.notification_id)
    return {
        "success": True,
        "appointment": crud.to_appointment_response(result.appointment),
        "notification_id": result.notification_id,
    }

@router.post("/appointments/{appointment_id}/cancel", response_model=schemas.AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.get_auth_context)
):
    result = appointment_service.cancel(db, auth, appointment_id)
    return crud.to_appointment_response(result.appointment)

@router.post("/appointments/{appointment_id}/complete", response_model=schemas.AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_staff)
):
    result = appointment_service.mark_completed(db, auth, appointment_id)
    return crud.to_appointment_response(result.appointment)

@router.post("/appointments/{appointment_id}/no-show", response_model=schemas.AppointmentResponse)
async def mark_no_show(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_staff)
):
    result = appointment_service.mark_no_show(db, auth, appointment_id)
    if result.notification_id is not None:
        background_tasks.add_task(dispatcher.deliver, result.notification_id)
    return crud.to_appointment_response(result.appointment)
