# dentalclinic/routers/auth.py
from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from .. import crud, schemas, security, models
from ..config import get_settings
from ..database import get_db
from ..exceptions import UnauthorizedError, ConflictError

import logging

logger = logging.getLogger(__name__)


router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)

@router.post("/signup", response_model=schemas.ProfileResponse, status_code=status.HTTP_201_CREATED)
def signup(data: schemas.SignupRequest, db: Session = Depends(get_db)):
    """Self-service registration; always creates a patient."""
    if crud.get_profile_by_email(db, data.email):
        raise ConflictError("E-mail already registered")

    if data.is_minor and not data.guardian_id:
        logger.warning(f"Minor patient '{data.email}' registered without a guardian")

    profile = crud.create_profile(
        db,
        email=data.email,
        password_hash=security.get_password_hash(data.password),
        role=models.UserRole.patient,
        first_name=data.first_name,
        last_name=data.last_name,
        phone=data.phone,
    )
    db.add(models.Patient(
        id=profile.id,
        is_minor=data.is_minor,
        guardian_id=data.guardian_id,
        insurance_provider=data.insurance_provider,
        insurance_number=data.insurance_number,
    ))
    db.commit()
    db.refresh(profile)
    logger.info(f"Patient profile {profile.id} registered")
    return profile

@router.post("/token", response_model=schemas.TokenResponse)
def login_for_access_token(db: Session = Depends(get_db), form_data: OAuth2PasswordRequestForm = Depends()):
    profile = security.authenticate(db, form_data.username, form_data.password)
    if not profile:
        logger.warning(f"Failed login attempt for: {form_data.username}")
        raise UnauthorizedError("Incorrect e-mail or password")

    logger.info(f"Profile {profile.id} successfully authenticated.")
    access_token = security.create_access_token(data={"sub": str(profile.id), "role": profile.role.value})
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "expires_in": get_settings().access_token_expire_minutes * 60,
        "role": profile.role,
    }
