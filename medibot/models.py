# medibot/models.py
from sqlalchemy import (
    Column, Integer, String, DateTime, Time, ForeignKey, Text, Date,
    Enum as SQLAlchemyEnum, Boolean, JSON, Numeric, Float, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import enum


class UserRole(str, enum.Enum):
    patient = "patient"
    doctor = "doctor"
    admin = "admin"


class DoctorStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"


class AppointmentStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    completed = "completed"
    cancelled = "cancelled"


class ChatSessionStatus(str, enum.Enum):
    active = "active"
    completed = "completed"


class ChatSender(str, enum.Enum):
    user = "user"
    bot = "bot"


class Severity(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"


class NotificationType(str, enum.Enum):
    appointment_request = "appointmentRequest"
    appointment_confirmation = "appointmentConfirmation"
    appointment_rejection = "appointmentRejection"


class NotificationStatus(str, enum.Enum):
    pending = "pending"
    sent = "sent"
    failed = "failed"
    skipped = "skipped"


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPOINTMENT_CREATE = "APPOINTMENT_CREATE"
    APPOINTMENT_RESPOND = "APPOINTMENT_RESPOND"
    APPOINTMENT_STATUS = "APPOINTMENT_STATUS"


class Doctor(Base):
    """Roster entry for a doctor who can be assigned appointments"""
    __tablename__ = "doctors"
    __table_args__ = (
        Index('idx_doctors_status_specialty', 'status', 'specialty'),
    )

    id = Column(Integer, primary_key=True, index=True)
    # Identity of the doctor at the external auth provider
    user_id = Column(String(255), unique=True, nullable=True, index=True)
    name = Column(String(255), nullable=False)
    specialty = Column(String(100), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=True)
    license_number = Column(String(50), nullable=True)
    experience = Column(String(50), nullable=True)
    education = Column(String(255), nullable=True)
    about = Column(Text, nullable=True)
    languages = Column(JSON, default=list)
    availability = Column(JSON, default=list)
    consultation_fee = Column(Numeric(10, 2), nullable=False, default=0)
    rating = Column(Float, default=4.5)
    total_reviews = Column(Integer, default=0)
    status = Column(SQLAlchemyEnum(DoctorStatus, name='doctor_status'), default=DoctorStatus.active, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # No cascade: deleting a doctor leaves its appointments in place
    appointments = relationship("Appointment", back_populates="doctor", passive_deletes="all")


class Appointment(Base):
    """Telehealth appointment request and its review outcome"""
    __tablename__ = "appointments"
    __table_args__ = (
        Index('idx_appointments_doctor_status', 'doctor_id', 'status'),
        Index('idx_appointments_patient_date', 'patient_id', 'appointment_date'),
    )

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(String(255), nullable=False, index=True)
    patient_name = Column(String(255), nullable=False)
    patient_email = Column(String(255), nullable=False)
    patient_phone = Column(String(30), nullable=True)

    # Snapshot of the doctor at booking time
    doctor_id = Column(Integer, ForeignKey("doctors.id", ondelete="SET NULL"), nullable=True, index=True)
    doctor_name = Column(String(255), nullable=True)
    doctor_email = Column(String(255), nullable=True)

    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(Time, nullable=False)
    reason = Column(Text, nullable=False)
    symptoms = Column(Text, nullable=True)
    consultation_fee = Column(Numeric(10, 2), nullable=False)

    status = Column(SQLAlchemyEnum(AppointmentStatus, name='appointment_status'), default=AppointmentStatus.pending, nullable=False, index=True)
    meeting_link = Column(String(500), nullable=True)
    doctor_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    doctor = relationship("Doctor", back_populates="appointments")
    notifications = relationship("NotificationLog", back_populates="appointment", passive_deletes="all")


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(String(255), nullable=False, index=True)
    status = Column(SQLAlchemyEnum(ChatSessionStatus, name='chat_session_status'), default=ChatSessionStatus.active, nullable=False)
    session_start = Column(DateTime(timezone=True), server_default=func.now())
    session_end = Column(DateTime(timezone=True), nullable=True)

    messages = relationship("ChatMessage", back_populates="session", cascade="all, delete-orphan", order_by="ChatMessage.id")


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    sender = Column(SQLAlchemyEnum(ChatSender, name='chat_sender'), nullable=False)
    severity = Column(SQLAlchemyEnum(Severity, name='severity'), nullable=True)
    appointment_suggested = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    session = relationship("ChatSession", back_populates="messages")


class NotificationLog(Base):
    """Delivery record for outbound appointment notifications"""
    __tablename__ = "notification_logs"
    __table_args__ = (
        Index('idx_notifications_status_created', 'status', 'created_at'),
    )

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True, index=True)
    notification_type = Column(SQLAlchemyEnum(NotificationType, name='notification_type'), nullable=False)
    recipient = Column(String(255), nullable=False, index=True)
    subject = Column(String(255), nullable=True)
    status = Column(SQLAlchemyEnum(NotificationStatus, name='notification_status'), default=NotificationStatus.pending, nullable=False)
    attempts = Column(Integer, default=0)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    sent_at = Column(DateTime(timezone=True), nullable=True)

    appointment = relationship("Appointment", back_populates="notifications")


class AuditLog(Base):
    """Who changed what, written in the same transaction as the change"""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index('idx_audit_actor_date', 'actor_id', 'timestamp'),
        Index('idx_audit_resource', 'resource_type', 'resource_id'),
    )

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(String(255), nullable=True)
    actor_role = Column(String(20), nullable=True)
    action = Column(SQLAlchemyEnum(AuditAction, name='audit_action'), nullable=False)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(Integer, nullable=True)
    details = Column(Text, nullable=True)
    new_values = Column(JSON, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)
