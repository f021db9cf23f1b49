# dentalclinic/schemas.py
from datetime import datetime, date
from decimal import Decimal
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, EmailStr, field_validator

from .models import (
    UserRole, AppointmentStatus, AvailabilityStatus, PaymentMethod, PaymentStatus,
    BudgetStatus, NotificationChannel, NotificationStatus,
)


# --- Base Schemas ---
class BaseSchema(BaseModel):
    class Config:
        from_attributes = True
        populate_by_name = True


# --- Auth / Profile Schemas ---
class SignupRequest(BaseSchema):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=1, max_length=100, alias="firstName")
    last_name: Optional[str] = Field(None, max_length=100, alias="lastName")
    phone: Optional[str] = Field(None, max_length=30)
    is_minor: bool = Field(False, alias="isMinor")
    guardian_id: Optional[int] = Field(None, alias="guardianId")
    insurance_provider: Optional[str] = Field(None, alias="insuranceProvider")
    insurance_number: Optional[str] = Field(None, alias="insuranceNumber")

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        if not any(char.isdigit() for char in v):
            raise ValueError('Password must contain at least one digit')
        if not any(char.isalpha() for char in v):
            raise ValueError('Password must contain at least one letter')
        return v


class TokenResponse(BaseSchema):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    role: UserRole


class PatientDetails(BaseSchema):
    is_minor: bool
    guardian_id: Optional[int] = None
    insurance_provider: Optional[str] = None
    insurance_number: Optional[str] = None


class DentistDetails(BaseSchema):
    registration_number: Optional[str] = None
    specialties: Optional[str] = None
    availability_status: AvailabilityStatus


class ProfileResponse(BaseSchema):
    id: int
    email: str
    role: UserRole
    first_name: str
    last_name: Optional[str] = None
    full_name: str
    phone: Optional[str] = None
    patient: Optional[PatientDetails] = None
    dentist: Optional[DentistDetails] = None


class ProfileUpdate(BaseSchema):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100, alias="firstName")
    last_name: Optional[str] = Field(None, max_length=100, alias="lastName")
    phone: Optional[str] = Field(None, max_length=30)


class DentistResponse(BaseSchema):
    id: int
    full_name: str
    registration_number: Optional[str] = None
    specialties: Optional[str] = None
    availability_status: AvailabilityStatus


class AvailabilityUpdate(BaseSchema):
    availability_status: AvailabilityStatus = Field(..., alias="availabilityStatus")


class ProcedureResponse(BaseSchema):
    id: int
    name: str
    description: Optional[str] = None
    estimated_duration: Optional[int] = None


# --- Appointment Schemas ---
class AppointmentCreate(BaseSchema):
    patient_id: int = Field(..., alias="patientId")
    dentist_id: int = Field(..., alias="dentistId")
    procedure_id: int = Field(..., alias="procedureId")
    appointment_date: date = Field(..., alias="appointmentDate")
    appointment_time: str = Field(..., alias="appointmentTime")
    location: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class AppointmentCreated(BaseSchema):
    success: bool = True
    appointment: int


class AppointmentConfirm(BaseSchema):
    appointment_id: int = Field(..., alias="appointmentId")


class AppointmentResponse(BaseSchema):
    id: int
    patient_id: int
    dentist_id: int
    procedure_id: int
    appointment_date: date
    appointment_time: str
    location: Optional[str] = None
    status: AppointmentStatus
    confirmed_by_patient: bool
    confirmed_at: Optional[datetime] = None
    confirmed_by_dentist_at: Optional[datetime] = None
    confirmation_sent: bool
    whatsapp_sent_at: Optional[datetime] = None
    patient_name: Optional[str] = None
    dentist_name: Optional[str] = None
    procedure_name: Optional[str] = None


class AvailableSlotsResponse(BaseSchema):
    dentist_id: int
    date: date
    slots: List[str]


class ConfirmationPreview(BaseSchema):
    appointment_id: int
    phone: Optional[str] = None
    message: str


class DentistConfirmResult(BaseSchema):
    success: bool = True
    appointment: AppointmentResponse
    notification_id: Optional[int] = None


# --- Notification Schemas ---
class WhatsAppSendRequest(BaseSchema):
    patient_id: int = Field(..., alias="patientId")
    message: Optional[str] = None
    template: Optional[str] = None
    template_args: Dict[str, Any] = Field(default_factory=dict, alias="templateArgs")
    type: Optional[str] = None
    appointment_id: Optional[int] = Field(None, alias="appointmentId")


class AppointmentWhatsAppRequest(BaseSchema):
    appointment_id: int = Field(..., alias="appointmentId")
    patient_phone: Optional[str] = Field(None, alias="patientPhone")


class SendResult(BaseSchema):
    success: bool = True
    message_id: Optional[str] = Field(None, serialization_alias="messageId")
    notification_id: int = Field(..., serialization_alias="notificationId")


class ReminderSweepResult(BaseSchema):
    success: bool = True
    sent_count: int = Field(..., serialization_alias="sentCount")
    message: str


class RetryResult(BaseSchema):
    success: bool = True
    delivered_count: int = Field(..., serialization_alias="deliveredCount")


class NotificationResponse(BaseSchema):
    id: int
    patient_id: int
    appointment_id: Optional[int] = None
    notification_type: str
    message: str
    channel: NotificationChannel
    status: NotificationStatus
    attempts: int
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


# --- Payment Schemas ---
class PaymentCreate(BaseSchema):
    budget_id: int = Field(..., alias="budgetId")
    patient_id: int = Field(..., alias="patientId")
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")


class PaymentCreated(BaseSchema):
    success: bool = True
    payment_id: int = Field(..., serialization_alias="paymentId")


class PaymentStatusUpdate(BaseSchema):
    status: PaymentStatus


class PaymentResponse(BaseSchema):
    id: int
    budget_id: Optional[int] = None
    patient_id: int
    amount: Decimal
    payment_method: PaymentMethod
    status: PaymentStatus
    payment_date: Optional[datetime] = None


class BudgetCreate(BaseSchema):
    patient_id: int = Field(..., alias="patientId")
    total_amount: Decimal = Field(..., gt=0, alias="totalAmount")
    description: Optional[str] = None
    expires_at: Optional[date] = Field(None, alias="expiresAt")


class BudgetResponse(BaseSchema):
    id: int
    patient_id: int
    total_amount: Decimal
    status: BudgetStatus
    description: Optional[str] = None
    expires_at: Optional[date] = None


# --- Clinical history ---
class PatientRecordCreate(BaseSchema):
    appointment_id: Optional[int] = Field(None, alias="appointmentId")
    clinical_notes: Optional[str] = Field(None, alias="clinicalNotes")
    diagnosis: Optional[str] = None
    treatment_plan: Optional[str] = Field(None, alias="treatmentPlan")


class PatientRecordResponse(BaseSchema):
    id: int
    patient_id: int
    appointment_id: Optional[int] = None
    author_id: int
    clinical_notes: Optional[str] = None
    diagnosis: Optional[str] = None
    treatment_plan: Optional[str] = None
    created_at: Optional[datetime] = None


class PatientDocumentCreate(BaseSchema):
    appointment_id: Optional[int] = Field(None, alias="appointmentId")
    file_name: str = Field(..., min_length=1, max_length=255, alias="fileName")
    file_url: str = Field(..., min_length=1, max_length=500, alias="fileUrl")
    document_type: Optional[str] = Field(None, max_length=50, alias="documentType")


class PatientDocumentResponse(BaseSchema):
    id: int
    patient_id: int
    appointment_id: Optional[int] = None
    uploaded_by: int
    file_name: str
    file_url: str
    document_type: Optional[str] = None
    created_at: Optional[datetime] = None


# --- FAQ ---
class FaqCreate(BaseSchema):
    question: str = Field(..., min_length=1)
    answer: str = Field(..., min_length=1)
    category: Optional[str] = Field(None, max_length=50)


class FaqResponse(BaseSchema):
    id: int
    question: str
    answer: str
    category: Optional[str] = None


class FaqSendRequest(BaseSchema):
    patient_id: int = Field(..., alias="patientId")


# --- Reports ---
class ReportResponse(BaseSchema):
    period: str
    period_start: date
    period_end: date
    total_appointments: int
    completed_appointments: int
    cancelled_appointments: int
    no_show_appointments: int
    total_revenue: Decimal
    pending_payments: int
    new_patients: int
    attendance_rate: float
    average_revenue_per_appointment: Decimal


class StaffCreate(BaseSchema):
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: UserRole
    first_name: str = Field(..., min_length=1, max_length=100, alias="firstName")
    last_name: Optional[str] = Field(None, max_length=100, alias="lastName")
    phone: Optional[str] = Field(None, max_length=30)
    registration_number: Optional[str] = Field(None, max_length=50, alias="registrationNumber")
    specialties: Optional[str] = Field(None, max_length=255)

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v == UserRole.patient:
            raise ValueError('Patients register through signup')
        return v
