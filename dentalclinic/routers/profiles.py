# dentalclinic/routers/profiles.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas, security, models
from ..database import get_db
from ..exceptions import ConflictError, ForbiddenError, NotFoundError
from ..security import AuthContext

import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Profiles"],
    responses={404: {"description": "Not found"}},
)

@router.get("/profiles/me", response_model=schemas.ProfileResponse)
def read_my_profile(auth: AuthContext = Depends(security.get_auth_context)):
    return auth.profile

@router.patch("/profiles/me", response_model=schemas.ProfileResponse)
def update_my_profile(
    update: schemas.ProfileUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.get_auth_context)
):
    return crud.update_profile(db, auth.profile, update)

@router.post("/profiles", response_model=schemas.ProfileResponse, status_code=status.HTTP_201_CREATED)
def create_staff_profile(
    data: schemas.StaffCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_admin)
):
    """Create a dentist, receptionist or admin profile."""
    if crud.get_profile_by_email(db, data.email):
        raise ConflictError("E-mail already registered")

    profile = crud.create_profile(
        db,
        email=data.email,
        password_hash=security.get_password_hash(data.password),
        role=data.role,
        first_name=data.first_name,
        last_name=data.last_name,
        phone=data.phone,
    )
    if data.role == models.UserRole.dentist:
        db.add(models.Dentist(
            id=profile.id,
            registration_number=data.registration_number,
            specialties=data.specialties,
        ))
    db.commit()
    db.refresh(profile)
    logger.info(f"Admin {auth.user_id} created {data.role.value} profile {profile.id}")
    return profile

@router.get("/dentists", response_model=List[schemas.DentistResponse])
def read_dentists(db: Session = Depends(get_db), auth: AuthContext = Depends(security.get_auth_context)):
    return [
        schemas.DentistResponse(
            id=dentist.id,
            full_name=dentist.profile.full_name,
            registration_number=dentist.registration_number,
            specialties=dentist.specialties,
            availability_status=dentist.availability_status,
        )
        for dentist in crud.get_dentists(db)
    ]

@router.patch("/dentists/{dentist_id}/availability", response_model=schemas.DentistResponse)
def update_dentist_availability(
    dentist_id: int,
    update: schemas.AvailabilityUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(security.require_clinician)
):
    if auth.role == models.UserRole.dentist and auth.user_id != dentist_id:
        raise ForbiddenError("Dentists can only change their own availability")
    dentist = crud.get_dentist(db, dentist_id)
    if not dentist:
        raise NotFoundError("Dentist not found")
    dentist.availability_status = update.availability_status
    db.commit()
    db.refresh(dentist)
    return schemas.DentistResponse(
        id=dentist.id,
        full_name=dentist.profile.full_name,
        registration_number=dentist.registration_number,
        specialties=dentist.specialties,
        availability_status=dentist.availability_status,
    )

@router.get("/procedures", response_model=List[schemas.ProcedureResponse])
def read_procedures(db: Session = Depends(get_db), auth: AuthContext = Depends(security.get_auth_context)):
    return crud.get_procedures(db)
