# dentalclinic/models.py
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Date,
    Enum as SQLAlchemyEnum, Boolean, Numeric, Index, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import enum


class UserRole(str, enum.Enum):
    patient = "patient"
    dentist = "dentist"
    receptionist = "receptionist"
    admin = "admin"

    @property
    def is_staff(self) -> bool:
        return self in (UserRole.dentist, UserRole.receptionist, UserRole.admin)


class AvailabilityStatus(str, enum.Enum):
    available = "available"
    busy = "busy"
    on_leave = "on_leave"


class AppointmentStatus(str, enum.Enum):
    scheduled = "scheduled"
    confirmed = "confirmed"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no_show"

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentStatus.completed, AppointmentStatus.cancelled, AppointmentStatus.no_show)


class PaymentMethod(str, enum.Enum):
    cash = "cash"
    credit_card = "credit_card"
    debit_card = "debit_card"
    pix = "pix"
    bank_transfer = "bank_transfer"
    insurance = "insurance"


class PaymentStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


class BudgetStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    expired = "expired"


class NotificationChannel(str, enum.Enum):
    in_app = "in_app"
    whatsapp = "whatsapp"


class NotificationStatus(str, enum.Enum):
    pending = "pending"
    sent = "sent"
    failed = "failed"


# ==================== Profiles ====================

class UserProfile(Base):
    """Authenticated identity with its role. Never hard-deleted."""
    __tablename__ = "user_profiles"
    __table_args__ = (
        Index('idx_user_profiles_role', 'role'),
    )

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(SQLAlchemyEnum(UserRole, name='user_role'), default=UserRole.patient, nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(30), nullable=True)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    patient = relationship("Patient", back_populates="profile", uselist=False, foreign_keys="Patient.id")
    dentist = relationship("Dentist", back_populates="profile", uselist=False)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class Patient(Base):
    """Patient details; shares its primary key with the owning UserProfile."""
    __tablename__ = "patients"

    id = Column(Integer, ForeignKey("user_profiles.id"), primary_key=True)
    is_minor = Column(Boolean, default=False, nullable=False)
    guardian_id = Column(Integer, ForeignKey("user_profiles.id"), nullable=True)
    insurance_provider = Column(String(100), nullable=True)
    insurance_number = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    profile = relationship("UserProfile", back_populates="patient", foreign_keys=[id])
    guardian = relationship("UserProfile", foreign_keys=[guardian_id])
    appointments = relationship("Appointment", back_populates="patient")


class Dentist(Base):
    __tablename__ = "dentists"

    id = Column(Integer, ForeignKey("user_profiles.id"), primary_key=True)
    registration_number = Column(String(50), nullable=True)
    specialties = Column(String(255), nullable=True)
    availability_status = Column(
        SQLAlchemyEnum(AvailabilityStatus, name='availability_status'),
        default=AvailabilityStatus.available, nullable=False
    )

    profile = relationship("UserProfile", back_populates="dentist")
    appointments = relationship("Appointment", back_populates="dentist")


class Procedure(Base):
    """Reference data."""
    __tablename__ = "procedures"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    estimated_duration = Column(Integer, nullable=True)  # minutes


# ==================== Appointments ====================

class Appointment(Base):
    """Appointment row. Cancellation is a status transition, rows are never deleted."""
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one live appointment per slot.
        Index(
            'uq_appointments_live_slot',
            'dentist_id', 'appointment_date', 'appointment_time',
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
        Index('idx_appointments_date_status', 'appointment_date', 'status'),
        Index('idx_appointments_patient', 'patient_id'),
    )

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    dentist_id = Column(Integer, ForeignKey("dentists.id"), nullable=False)
    procedure_id = Column(Integer, ForeignKey("procedures.id"), nullable=False)
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(String(5), nullable=False)  # "HH:MM"
    location = Column(String(255), nullable=True)
    status = Column(
        SQLAlchemyEnum(AppointmentStatus, name='appointment_status'),
        default=AppointmentStatus.scheduled, nullable=False
    )
    notes = Column(Text, nullable=True)

    confirmed_by_patient = Column(Boolean, default=False, nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_by_dentist_at = Column(DateTime(timezone=True), nullable=True)
    confirmation_sent = Column(Boolean, default=False, nullable=False)
    whatsapp_sent_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(Integer, ForeignKey("user_profiles.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    patient = relationship("Patient", back_populates="appointments")
    dentist = relationship("Dentist", back_populates="appointments")
    procedure = relationship("Procedure")


# ==================== Billing ====================

class Budget(Base):
    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLAlchemyEnum(BudgetStatus, name='budget_status'), default=BudgetStatus.pending, nullable=False)
    description = Column(Text, nullable=True)
    expires_at = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    payments = relationship("Payment", back_populates="budget")


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        Index('idx_payments_status_date', 'status', 'payment_date'),
    )

    id = Column(Integer, primary_key=True, index=True)
    budget_id = Column(Integer, ForeignKey("budgets.id"), nullable=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_method = Column(SQLAlchemyEnum(PaymentMethod, name='payment_method'), nullable=False)
    status = Column(SQLAlchemyEnum(PaymentStatus, name='payment_status'), default=PaymentStatus.pending, nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=True)
    registered_by = Column(Integer, ForeignKey("user_profiles.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    budget = relationship("Budget", back_populates="payments")


# ==================== Notifications ====================

class Notification(Base):
    """One row per dispatch; status only reaches `sent` after the gateway acknowledges."""
    __tablename__ = "notifications"
    __table_args__ = (
        Index('idx_notifications_status', 'status'),
        Index('idx_notifications_patient', 'patient_id'),
    )

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    notification_type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    channel = Column(SQLAlchemyEnum(NotificationChannel, name='notification_channel'), nullable=False)
    recipient = Column(String(30), nullable=True)  # normalised phone for whatsapp
    status = Column(
        SQLAlchemyEnum(NotificationStatus, name='notification_status'),
        default=NotificationStatus.pending, nullable=False
    )
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    gateway_message_id = Column(String(100), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


# ==================== Clinical history ====================

class PatientRecord(Base):
    """Clinical notes; append only."""
    __tablename__ = "patient_records"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    author_id = Column(Integer, ForeignKey("user_profiles.id"), nullable=False)
    clinical_notes = Column(Text, nullable=True)
    diagnosis = Column(Text, nullable=True)
    treatment_plan = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class PatientDocument(Base):
    __tablename__ = "patient_documents"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=True)
    uploaded_by = Column(Integer, ForeignKey("user_profiles.id"), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_url = Column(String(500), nullable=False)
    document_type = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Faq(Base):
    __tablename__ = "faq"

    id = Column(Integer, primary_key=True, index=True)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    category = Column(String(50), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
