# dentalclinic/routers/records.py
# Clinical history: append-only records and document references per patient.
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import crud, schemas, security
from ..database import get_db
from ..exceptions import ForbiddenError, ValidationError
from ..security import AuthContext

router = APIRouter(
    prefix="/patients",
    tags=["Clinical history"],
    responses={404: {"description": "Not found"}},
)

def _ensure_can_read(auth: AuthContext, patient_id: int) -> None:
    if not auth.is_staff and auth.user_id != patient_id:
        raise ForbiddenError("Access denied")

def _ensure_appointment_belongs(db: Session, patient_id: int, appointment_id: Optional[int]) -> None:
    if appointment_id is None:
        return
    appointment = crud.get_appointment_or_404(db, appointment_id)
    if appointment.patient_id != patient_id:
        raise ValidationError("Appointment does not belong to this patient")

@router.post("/{patient_id}/records", response_model=schemas.PatientRecordResponse, status_code=status.HTTP_201_CREATED)
def create_record(
    patient_id: int,
    record: schemas.PatientRecordCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_clinician)
):
    crud.get_patient_or_404(db, patient_id)
    _ensure_appointment_belongs(db, patient_id, record.appointment_id)
    return crud.create_patient_record(db, patient_id, auth.user_id, record)

@router.get("/{patient_id}/records", response_model=List[schemas.PatientRecordResponse])
def read_records(
    patient_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.get_auth_context)
):
    _ensure_can_read(auth, patient_id)
    crud.get_patient_or_404(db, patient_id)
    return crud.get_patient_records(db, patient_id)

@router.post("/{patient_id}/documents", response_model=schemas.PatientDocumentResponse, status_code=status.HTTP_201_CREATED)
def create_document(
    patient_id: int,
    document: schemas.PatientDocumentCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_staff)
):
    crud.get_patient_or_404(db, patient_id)
    _ensure_appointment_belongs(db, patient_id, document.appointment_id)
    return crud.create_patient_document(db, patient_id, auth.user_id, document)

@router.get("/{patient_id}/documents", response_model=List[schemas.PatientDocumentResponse])
def read_documents(
    patient_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.get_auth_context)
):
    _ensure_can_read(auth, patient_id)
    crud.get_patient_or_404(db, patient_id)
    return crud.get_patient_documents(db, patient_id)
