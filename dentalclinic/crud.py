# dentalclinic/crud.py - data access helpers shared by services and routers
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import func
from datetime import datetime, date
from typing import Optional, List
import logging

from . import models, schemas
from .exceptions import NotFoundError

logger = logging.getLogger(__name__)


# ==================== PROFILES ====================

def get_profile(db: Session, profile_id: int) -> Optional[models.UserProfile]:
    return db.query(models.UserProfile).filter(models.UserProfile.id == profile_id).first()

def get_profile_by_email(db: Session, email: str) -> Optional[models.UserProfile]:
    if not email:
        return None
    return db.query(models.UserProfile).filter(models.UserProfile.email == email.lower().strip()).first()

def create_profile(
    db: Session,
    email: str,
    password_hash: str,
    role: models.UserRole,
    first_name: str,
    last_name: Optional[str] = None,
    phone: Optional[str] = None,
) -> models.UserProfile:
    profile = models.UserProfile(
        email=email.lower().strip(),
        password_hash=password_hash,
        role=role,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
    )
    db.add(profile)
    db.flush()
    return profile

def update_profile(db: Session, profile: models.UserProfile, update: schemas.ProfileUpdate) -> models.UserProfile:
    for key, value in update.model_dump(exclude_unset=True).items():
        setattr(profile, key, value)
    db.commit()
    db.refresh(profile)
    return profile


# ==================== PATIENTS / DENTISTS / PROCEDURES ====================

def get_patient(db: Session, patient_id: int) -> Optional[models.Patient]:
    return db.query(models.Patient).options(
        joinedload(models.Patient.profile)
    ).filter(models.Patient.id == patient_id).first()

def get_patient_or_404(db: Session, patient_id: int) -> models.Patient:
    patient = get_patient(db, patient_id)
    if not patient:
        raise NotFoundError("Patient not found")
    return patient

def get_dentist(db: Session, dentist_id: int) -> Optional[models.Dentist]:
    return db.query(models.Dentist).options(
        joinedload(models.Dentist.profile)
    ).filter(models.Dentist.id == dentist_id).first()

def get_dentists(db: Session) -> List[models.Dentist]:
    return db.query(models.Dentist).options(joinedload(models.Dentist.profile)).order_by(models.Dentist.id).all()

def get_procedure(db: Session, procedure_id: int) -> Optional[models.Procedure]:
    return db.query(models.Procedure).filter(models.Procedure.id == procedure_id).first()

def get_procedure_by_name(db: Session, name: str) -> Optional[models.Procedure]:
    return db.query(models.Procedure).filter(models.Procedure.name == name).first()

def get_procedures(db: Session) -> List[models.Procedure]:
    return db.query(models.Procedure).order_by(models.Procedure.name).all()


# ==================== APPOINTMENTS ====================

def _appointment_query(db: Session):
    # Related names come in with the same query instead of one lookup per row
    return db.query(models.Appointment).options(
        joinedload(models.Appointment.patient).joinedload(models.Patient.profile),
        joinedload(models.Appointment.dentist).joinedload(models.Dentist.profile),
        joinedload(models.Appointment.procedure),
    )

def get_appointment(db: Session, appointment_id: int) -> Optional[models.Appointment]:
    return _appointment_query(db).filter(models.Appointment.id == appointment_id).first()

def get_appointment_or_404(db: Session, appointment_id: int) -> models.Appointment:
    appointment = get_appointment(db, appointment_id)
    if not appointment:
        raise NotFoundError("Appointment not found")
    return appointment

def get_appointments(
    db: Session,
    patient_id: Optional[int] = None,
    dentist_id: Optional[int] = None,
    status: Optional[models.AppointmentStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    skip: int = 0,
    limit: int = 200,
) -> List[models.Appointment]:
    query = _appointment_query(db)
    if patient_id is not None:
        query = query.filter(models.Appointment.patient_id == patient_id)
    if dentist_id is not None:
        query = query.filter(models.Appointment.dentist_id == dentist_id)
    if status is not None:
        query = query.filter(models.Appointment.status == status)
    if start_date is not None:
        query = query.filter(models.Appointment.appointment_date >= start_date)
    if end_date is not None:
        query = query.filter(models.Appointment.appointment_date <= end_date)
    return query.order_by(
        models.Appointment.appointment_date.asc(), models.Appointment.appointment_time.asc()
    ).offset(skip).limit(limit).all()

def get_booked_times(db: Session, dentist_id: int, for_date: date) -> List[str]:
    rows = db.query(models.Appointment.appointment_time).filter(
        models.Appointment.dentist_id == dentist_id,
        models.Appointment.appointment_date == for_date,
        models.Appointment.status != models.AppointmentStatus.cancelled,
    ).all()
    return [row[0] for row in rows]

def get_unconfirmed_appointments_on(db: Session, for_date: date) -> List[models.Appointment]:
    return _appointment_query(db).filter(
        models.Appointment.appointment_date == for_date,
        models.Appointment.confirmed_by_patient.is_(False),
        models.Appointment.status != models.AppointmentStatus.cancelled,
    ).order_by(models.Appointment.appointment_time.asc()).all()

def to_appointment_response(appointment: models.Appointment) -> schemas.AppointmentResponse:
    response = schemas.AppointmentResponse.model_validate(appointment)
    if appointment.patient and appointment.patient.profile:
        response.patient_name = appointment.patient.profile.full_name
    if appointment.dentist and appointment.dentist.profile:
        response.dentist_name = appointment.dentist.profile.full_name
    if appointment.procedure:
        response.procedure_name = appointment.procedure.name
    return response


# ==================== NOTIFICATIONS ====================

def get_notification(db: Session, notification_id: int) -> Optional[models.Notification]:
    return db.query(models.Notification).filter(models.Notification.id == notification_id).first()

def get_notifications(db: Session, patient_id: Optional[int] = None, limit: int = 100) -> List[models.Notification]:
    query = db.query(models.Notification)
    if patient_id is not None:
        query = query.filter(models.Notification.patient_id == patient_id)
    return query.order_by(models.Notification.id.desc()).limit(limit).all()

def get_undelivered_notifications(db: Session, max_attempts: int) -> List[models.Notification]:
    return db.query(models.Notification).filter(
        models.Notification.channel == models.NotificationChannel.whatsapp,
        models.Notification.status.in_([models.NotificationStatus.pending, models.NotificationStatus.failed]),
        models.Notification.attempts < max_attempts,
    ).order_by(models.Notification.id.asc()).all()


# ==================== PAYMENTS / BUDGETS ====================

def get_budget(db: Session, budget_id: int) -> Optional[models.Budget]:
    return db.query(models.Budget).filter(models.Budget.id == budget_id).first()

def get_budgets(db: Session, patient_id: Optional[int] = None) -> List[models.Budget]:
    query = db.query(models.Budget)
    if patient_id is not None:
        query = query.filter(models.Budget.patient_id == patient_id)
    return query.order_by(models.Budget.id.desc()).all()

def create_budget(db: Session, budget: schemas.BudgetCreate) -> models.Budget:
    db_budget = models.Budget(
        patient_id=budget.patient_id,
        total_amount=budget.total_amount,
        description=budget.description,
        expires_at=budget.expires_at,
    )
    db.add(db_budget)
    db.commit()
    db.refresh(db_budget)
    return db_budget

def get_payment(db: Session, payment_id: int) -> Optional[models.Payment]:
    return db.query(models.Payment).filter(models.Payment.id == payment_id).first()

def get_payments(db: Session, patient_id: Optional[int] = None) -> List[models.Payment]:
    query = db.query(models.Payment)
    if patient_id is not None:
        query = query.filter(models.Payment.patient_id == patient_id)
    return query.order_by(models.Payment.id.desc()).all()


# ==================== CLINICAL HISTORY ====================

def create_patient_record(db: Session, patient_id: int, author_id: int, record: schemas.PatientRecordCreate) -> models.PatientRecord:
    db_record = models.PatientRecord(patient_id=patient_id, author_id=author_id, **record.model_dump())
    db.add(db_record)
    db.commit()
    db.refresh(db_record)
    return db_record

def get_patient_records(db: Session, patient_id: int) -> List[models.PatientRecord]:
    return db.query(models.PatientRecord).filter(
        models.PatientRecord.patient_id == patient_id
    ).order_by(models.PatientRecord.id.desc()).all()

def create_patient_document(db: Session, patient_id: int, uploaded_by: int, document: schemas.PatientDocumentCreate) -> models.PatientDocument:
    db_document = models.PatientDocument(patient_id=patient_id, uploaded_by=uploaded_by, **document.model_dump())
    db.add(db_document)
    db.commit()
    db.refresh(db_document)
    return db_document

def get_patient_documents(db: Session, patient_id: int) -> List[models.PatientDocument]:
    return db.query(models.PatientDocument).filter(
        models.PatientDocument.patient_id == patient_id
    ).order_by(models.PatientDocument.id.desc()).all()


# ==================== FAQ ====================

def get_faqs(db: Session) -> List[models.Faq]:
    return db.query(models.Faq).order_by(models.Faq.id.asc()).all()

def get_faq(db: Session, faq_id: int) -> Optional[models.Faq]:
    return db.query(models.Faq).filter(models.Faq.id == faq_id).first()

def create_faq(db: Session, faq: schemas.FaqCreate) -> models.Faq:
    db_faq = models.Faq(**faq.model_dump())
    db.add(db_faq)
    db.commit()
    db.refresh(db_faq)
    return db_faq


# ==================== REPORTING QUERIES ====================

def count_appointments(db: Session, start_date: date, end_date: date, status: Optional[models.AppointmentStatus] = None) -> int:
    query = db.query(func.count(models.Appointment.id)).filter(
        models.Appointment.appointment_date >= start_date,
        models.Appointment.appointment_date <= end_date,
    )
    if status is not None:
        query = query.filter(models.Appointment.status == status)
    return query.scalar() or 0

def sum_completed_payments(db: Session, start: datetime, end: datetime):
    return db.query(func.coalesce(func.sum(models.Payment.amount), 0)).filter(
        models.Payment.status == models.PaymentStatus.completed,
        models.Payment.payment_date >= start,
        models.Payment.payment_date < end,
    ).scalar()

def count_payments(db: Session, status: models.PaymentStatus) -> int:
    return db.query(func.count(models.Payment.id)).filter(models.Payment.status == status).scalar() or 0

def count_new_patients(db: Session, start: datetime, end: datetime) -> int:
    return db.query(func.count(models.Patient.id)).filter(
        models.Patient.created_at >= start,
        models.Patient.created_at < end,
    ).scalar() or 0
