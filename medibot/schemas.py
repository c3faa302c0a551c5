# medibot/schemas.py
import re
from datetime import datetime, date, time
from decimal import Decimal
from typing import List, Optional, Dict, Any, Literal
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, EmailStr, field_validator, field_serializer
from pydantic.alias_generators import to_camel
from .models import (
    UserRole, DoctorStatus, AppointmentStatus, ChatSessionStatus, ChatSender,
    Severity, NotificationType, NotificationStatus
)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")


# --- Base Schemas ---
class BaseSchema(BaseModel):
    """camelCase on the wire, snake_case in Python, readable from ORM rows"""
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class Actor(BaseModel):
    """Identity of the caller, passed explicitly into every core operation"""
    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin


class ErrorDetail(BaseSchema):
    field: str
    message: str


class ErrorResponse(BaseSchema):
    error: str
    message: str
    details: List[ErrorDetail] = []


# --- Doctor Schemas ---
class DoctorBase(BaseSchema):
    name: str = Field(..., min_length=1, max_length=255)
    specialty: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=30)
    license_number: Optional[str] = Field(None, max_length=50)
    experience: Optional[str] = None
    education: Optional[str] = None
    about: Optional[str] = None
    languages: List[str] = []
    availability: List[str] = []
    status: DoctorStatus = DoctorStatus.active
    user_id: Optional[str] = None


class DoctorCreate(DoctorBase):
    consultation_fee: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    rating: Optional[float] = Field(None, ge=0, le=5)
    total_reviews: Optional[int] = Field(None, ge=0)


class DoctorUpdate(BaseSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    specialty: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=30)
    experience: Optional[str] = None
    education: Optional[str] = None
    about: Optional[str] = None
    languages: Optional[List[str]] = None
    availability: Optional[List[str]] = None
    consultation_fee: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    status: Optional[DoctorStatus] = None
    user_id: Optional[str] = None


class DoctorResponse(DoctorBase):
    id: int
    email: str
    consultation_fee: float
    rating: Optional[float] = None
    total_reviews: Optional[int] = None
    created_at: Optional[datetime] = None


class SpecialtyCount(BaseSchema):
    specialty: str
    doctor_count: int


class DoctorAssignment(BaseSchema):
    """Doctor fields snapshotted onto a new appointment"""
    doctor_id: int
    doctor_name: str
    doctor_email: str
    consultation_fee: Decimal


# --- Appointment Schemas ---
class AppointmentCreate(BaseSchema):
    patient_name: str = Field(..., min_length=1, max_length=255)
    patient_email: EmailStr
    patient_phone: Optional[str] = Field(None, max_length=30)
    appointment_date: date
    appointment_time: time
    reason: str = Field(..., min_length=1)
    symptoms: Optional[str] = None
    doctor_id: Optional[int] = None
    specialty: Optional[str] = None

    @field_validator("patient_email", mode="after")
    @classmethod
    def normalize_email(cls, v):
        # Local part is case-sensitive; only the domain is folded
        local, _, domain = v.rpartition("@")
        return f"{local}@{domain.lower()}"

    @field_validator("appointment_date", mode="before")
    @classmethod
    def parse_appointment_date(cls, v):
        if isinstance(v, date) and not isinstance(v, datetime):
            return v
        if not isinstance(v, str) or not DATE_PATTERN.match(v):
            raise ValueError("must use the YYYY-MM-DD format")
        try:
            return datetime.strptime(v, "%Y-%m-%d").date()
        except ValueError:
            raise ValueError("is not a valid calendar date")

    @field_validator("appointment_time", mode="before")
    @classmethod
    def parse_appointment_time(cls, v):
        if isinstance(v, time):
            return v
        if not isinstance(v, str) or not TIME_PATTERN.match(v):
            raise ValueError("must use the HH:MM format")
        try:
            return datetime.strptime(v, "%H:%M").time()
        except ValueError:
            raise ValueError("is not a valid time of day")

    @field_validator("patient_phone", "symptoms", "specialty", mode="before")
    @classmethod
    def empty_str_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class AppointmentRespond(BaseSchema):
    # Older clients send the decision as "status"
    decision: Literal["approved", "rejected"] = Field(..., validation_alias=AliasChoices("decision", "status"))
    doctor_notes: Optional[str] = None


class AppointmentStatusUpdate(BaseSchema):
    status: Literal["completed", "cancelled"]


class AppointmentResponse(BaseSchema):
    id: int
    patient_id: str
    patient_name: str
    patient_email: str
    patient_phone: Optional[str] = None
    doctor_id: Optional[int] = None
    doctor_name: Optional[str] = None
    doctor_email: Optional[str] = None
    appointment_date: date
    appointment_time: time
    reason: str
    symptoms: Optional[str] = None
    consultation_fee: float
    status: AppointmentStatus
    meeting_link: Optional[str] = None
    doctor_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    @field_serializer("appointment_time")
    def serialize_time(self, v: time) -> str:
        return v.strftime("%H:%M")


class AppointmentCreated(BaseSchema):
    appointment_id: int
    status: AppointmentStatus
    doctor_id: Optional[int] = None
    doctor_name: Optional[str] = None
    consultation_fee: float
    message: str = "Appointment request sent to the assigned doctor."


class AppointmentStats(BaseSchema):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    completed: int = 0
    cancelled: int = 0


# --- Chat Schemas ---
class ChatMessageCreate(BaseSchema):
    message: str = Field(..., min_length=1, max_length=4000)


class TriageResponse(BaseSchema):
    severity: Severity
    appointment_needed: bool
    matched_keywords: List[str] = []


class ChatSessionResponse(BaseSchema):
    id: int
    patient_id: str
    status: ChatSessionStatus
    session_start: Optional[datetime] = None
    session_end: Optional[datetime] = None


class ChatMessageResponse(BaseSchema):
    id: int
    session_id: int
    message: str
    sender: ChatSender
    severity: Optional[Severity] = None
    appointment_suggested: bool
    created_at: Optional[datetime] = None


class ChatExchangeResponse(BaseSchema):
    triage: TriageResponse
    user_message: ChatMessageResponse
    bot_message: ChatMessageResponse


# --- Notification Schemas ---
class AppointmentNotification(BaseModel):
    """Payload handed to the notification gateway"""
    notification_type: NotificationType
    recipient: str
    subject: str
    appointment_id: Optional[int] = None
    context: Dict[str, Any] = {}


class NotificationLogResponse(BaseSchema):
    id: int
    appointment_id: Optional[int] = None
    notification_type: NotificationType
    recipient: str
    subject: Optional[str] = None
    status: NotificationStatus
    attempts: int
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
