# medibot/crud.py
from sqlalchemy.orm import Session
from sqlalchemy import or_, func
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from datetime import datetime, timedelta, date, timezone
from typing import Optional, List, Dict, Any, Iterable
import logging

from . import models, schemas

logger = logging.getLogger(__name__)


class CRUDError(Exception):
    pass


DEMO_DOCTORS = [
    {
        "user_id": "doctor_001",
        "name": "Dr. Sarah Johnson",
        "specialty": "General Medicine",
        "email": "sarah.johnson@medibot.com",
        "phone": "+1 (555) 123-4567",
        "license_number": "MD123456",
        "experience": "8 years",
        "education": "MD from Harvard Medical School",
        "about": "General practitioner with over 8 years of experience in primary care.",
        "languages": ["English", "Spanish"],
        "availability": ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday"],
        "consultation_fee": 150,
        "rating": 4.8,
        "total_reviews": 245,
    },
    {
        "user_id": "doctor_002",
        "name": "Dr. Michael Chen",
        "specialty": "Cardiology",
        "email": "michael.chen@medibot.com",
        "phone": "+1 (555) 234-5678",
        "license_number": "MD234567",
        "experience": "12 years",
        "education": "MD from Johns Hopkins University",
        "about": "Board-certified cardiologist treating heart conditions.",
        "languages": ["English", "Mandarin"],
        "availability": ["Monday", "Wednesday", "Friday"],
        "consultation_fee": 250,
        "rating": 4.9,
        "total_reviews": 189,
    },
    {
        "user_id": "doctor_003",
        "name": "Dr. Emily Rodriguez",
        "specialty": "Pediatrics",
        "email": "emily.rodriguez@medibot.com",
        "phone": "+1 (555) 345-6789",
        "license_number": "MD345678",
        "experience": "10 years",
        "education": "MD from Stanford University",
        "about": "Pediatrician caring for children and adolescents.",
        "languages": ["English", "Spanish"],
        "availability": ["Tuesday", "Thursday", "Saturday"],
        "consultation_fee": 180,
        "rating": 4.7,
        "total_reviews": 156,
    },
]

# ==================== DOCTOR DIRECTORY ====================

def get_doctor(db: Session, doctor_id: int) -> Optional[models.Doctor]:
    try:
        return db.query(models.Doctor).filter(models.Doctor.id == doctor_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching doctor {doctor_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")

def get_doctor_by_user_id(db: Session, user_id: str) -> Optional[models.Doctor]:
    return db.query(models.Doctor).filter(models.Doctor.user_id == user_id).first()

def get_active_doctors(db: Session) -> List[models.Doctor]:
    """Active roster in its stable enumeration order (id ascending)."""
    return db.query(models.Doctor).filter(
        models.Doctor.status == models.DoctorStatus.active
    ).order_by(models.Doctor.id.asc()).all()

def get_doctors(
    db: Session,
    specialty: Optional[str] = None,
    search: Optional[str] = None,
    include_inactive: bool = False,
) -> List[models.Doctor]:
    """List the roster with optional specialty and free-text filters."""
    try:
        query = db.query(models.Doctor)
        if not include_inactive:
            query = query.filter(models.Doctor.status == models.DoctorStatus.active)
        if specialty and specialty.lower() != "all":
            query = query.filter(func.lower(models.Doctor.specialty).contains(specialty.lower(), autoescape=True))
        if search:
            term = search.lower()
            query = query.filter(or_(
                func.lower(models.Doctor.name).contains(term, autoescape=True),
                func.lower(models.Doctor.specialty).contains(term, autoescape=True),
            ))
        return query.order_by(models.Doctor.id.asc()).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching doctors: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")

def get_specialties(db: Session) -> List[Dict[str, Any]]:
    rows = db.query(
        models.Doctor.specialty, func.count(models.Doctor.id)
    ).filter(
        models.Doctor.status == models.DoctorStatus.active
    ).group_by(models.Doctor.specialty).order_by(models.Doctor.specialty.asc()).all()
    return [{"specialty": specialty, "doctor_count": count} for specialty, count in rows]

def create_doctor(db: Session, doctor: schemas.DoctorCreate) -> models.Doctor:
    data = doctor.model_dump(exclude_none=True)
    db_doctor = models.Doctor(**data)
    try:
        db.add(db_doctor)
        db.commit()
        db.refresh(db_doctor)
        logger.info(f"Created doctor {db_doctor.id} ({db_doctor.specialty})")
        return db_doctor
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Database integrity error on doctor creation: {e}")
        raise CRUDError("A doctor is already linked to this user account.")

def update_doctor(db: Session, doctor_id: int, doctor_update: schemas.DoctorUpdate) -> Optional[models.Doctor]:
    db_doctor = get_doctor(db, doctor_id)
    if not db_doctor:
        return None
    # Fee changes apply to future bookings only; appointments keep their snapshot
    for key, value in doctor_update.model_dump(exclude_unset=True).items():
        setattr(db_doctor, key, value)
    try:
        db.commit()
        db.refresh(db_doctor)
        return db_doctor
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Database integrity error on doctor update: {e}")
        raise CRUDError("A doctor is already linked to this user account.")

def delete_doctor(db: Session, doctor_id: int) -> bool:
    db_doctor = get_doctor(db, doctor_id)
    if not db_doctor:
        return False
    db.delete(db_doctor)
    db.commit()
    return True

def seed_doctors(db: Session) -> int:
    """Insert the demo roster when no doctors exist. Returns how many were created."""
    if db.query(models.Doctor).count() > 0:
        return 0
    for entry in DEMO_DOCTORS:
        db.add(models.Doctor(status=models.DoctorStatus.active, **entry))
    db.commit()
    logger.info(f"Seeded {len(DEMO_DOCTORS)} demo doctors")
    return len(DEMO_DOCTORS)

# ==================== APPOINTMENTS ====================

def get_appointment(db: Session, appointment_id: int) -> Optional[models.Appointment]:
    try:
        return db.query(models.Appointment).filter(models.Appointment.id == appointment_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching appointment {appointment_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")

def count_pending_appointments(db: Session, doctor_id: int) -> int:
    return db.query(func.count(models.Appointment.id)).filter(
        models.Appointment.doctor_id == doctor_id,
        models.Appointment.status == models.AppointmentStatus.pending
    ).scalar() or 0

def add_appointment(db: Session, data: Dict[str, Any]) -> models.Appointment:
    """Stage a new appointment in the current transaction; the caller commits."""
    db_appointment = models.Appointment(**data)
    db.add(db_appointment)
    db.flush()
    return db_appointment

def transition_appointment(
    db: Session,
    appointment_id: int,
    from_statuses: Iterable[models.AppointmentStatus],
    values: Dict[str, Any],
) -> bool:
    """Conditionally update an appointment still in one of `from_statuses`.

    The WHERE clause on status is the serialization point for concurrent
    callers: only the first one matches a row.
    """
    updated = db.query(models.Appointment).filter(
        models.Appointment.id == appointment_id,
        models.Appointment.status.in_(list(from_statuses))
    ).update(values, synchronize_session=False)
    return updated == 1

def get_appointments(
    db: Session,
    patient_id: Optional[str] = None,
    doctor_id: Optional[int] = None,
    status: Optional[models.AppointmentStatus] = None,
    limit: Optional[int] = None,
) -> List[models.Appointment]:
    """Filtered appointments, newest appointment date first."""
    try:
        query = db.query(models.Appointment)
        if patient_id:
            query = query.filter(models.Appointment.patient_id == patient_id)
        if doctor_id:
            query = query.filter(models.Appointment.doctor_id == doctor_id)
        if status:
            query = query.filter(models.Appointment.status == status)
        query = query.order_by(
            models.Appointment.appointment_date.desc(),
            models.Appointment.appointment_time.desc(),
            models.Appointment.id.desc()
        )
        if limit:
            query = query.limit(limit)
        return query.all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching appointments: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")

def get_upcoming_appointments(
    db: Session,
    days: int = 7,
    patient_id: Optional[str] = None,
    doctor_id: Optional[int] = None,
    today: Optional[date] = None,
) -> List[models.Appointment]:
    today = today or date.today()
    query = db.query(models.Appointment).filter(
        models.Appointment.appointment_date >= today,
        models.Appointment.appointment_date <= today + timedelta(days=days)
    )
    if patient_id:
        query = query.filter(models.Appointment.patient_id == patient_id)
    if doctor_id:
        query = query.filter(models.Appointment.doctor_id == doctor_id)
    return query.order_by(
        models.Appointment.appointment_date.asc(),
        models.Appointment.appointment_time.asc()
    ).all()

def get_appointment_stats(db: Session, patient_id: Optional[str] = None, doctor_id: Optional[int] = None) -> Dict[str, int]:
    query = db.query(models.Appointment.status, func.count(models.Appointment.id))
    if patient_id:
        query = query.filter(models.Appointment.patient_id == patient_id)
    if doctor_id:
        query = query.filter(models.Appointment.doctor_id == doctor_id)
    stats = {s.value: 0 for s in models.AppointmentStatus}
    for status, count in query.group_by(models.Appointment.status).all():
        stats[status.value] = count
    stats["total"] = sum(stats.values())
    return stats

def delete_appointment(db: Session, appointment_id: int) -> bool:
    db_appointment = get_appointment(db, appointment_id)
    if not db_appointment:
        return False
    db.delete(db_appointment)
    db.commit()
    return True

# ==================== CHAT SESSIONS ====================

def create_chat_session(db: Session, patient_id: str) -> models.ChatSession:
    db_session = models.ChatSession(
        patient_id=patient_id,
        status=models.ChatSessionStatus.active,
        session_start=datetime.now(timezone.utc)
    )
    db.add(db_session)
    db.commit()
    db.refresh(db_session)
    return db_session

def get_chat_session(db: Session, session_id: int) -> Optional[models.ChatSession]:
    return db.query(models.ChatSession).filter(models.ChatSession.id == session_id).first()

def get_chat_sessions(
    db: Session,
    patient_id: str,
    status: Optional[models.ChatSessionStatus] = None,
    limit: Optional[int] = None,
) -> List[models.ChatSession]:
    query = db.query(models.ChatSession).filter(models.ChatSession.patient_id == patient_id)
    if status:
        query = query.filter(models.ChatSession.status == status)
    query = query.order_by(models.ChatSession.session_start.desc(), models.ChatSession.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()

def end_chat_session(db: Session, db_session: models.ChatSession) -> models.ChatSession:
    db_session.status = models.ChatSessionStatus.completed
    db_session.session_end = datetime.now(timezone.utc)
    db.commit()
    db.refresh(db_session)
    return db_session

def delete_chat_session(db: Session, db_session: models.ChatSession) -> None:
    # Messages go with the session (delete-orphan cascade)
    db.delete(db_session)
    db.commit()

def save_chat_message(
    db: Session,
    session_id: int,
    message: str,
    sender: models.ChatSender,
    severity: Optional[models.Severity] = None,
    appointment_suggested: bool = False,
) -> models.ChatMessage:
    db_message = models.ChatMessage(
        session_id=session_id,
        message=message,
        sender=sender,
        severity=severity,
        appointment_suggested=appointment_suggested
    )
    db.add(db_message)
    db.commit()
    db.refresh(db_message)
    return db_message

def get_chat_messages(db: Session, session_id: int, limit: int = 50, offset: int = 0) -> List[models.ChatMessage]:
    return db.query(models.ChatMessage).filter(
        models.ChatMessage.session_id == session_id
    ).order_by(models.ChatMessage.id.asc()).offset(offset).limit(limit).all()

# ==================== NOTIFICATION LOG ====================

def create_notification_log(db: Session, notification: schemas.AppointmentNotification) -> models.NotificationLog:
    db_log = models.NotificationLog(
        appointment_id=notification.appointment_id,
        notification_type=notification.notification_type,
        recipient=notification.recipient,
        subject=notification.subject,
        status=models.NotificationStatus.pending,
        attempts=0
    )
    db.add(db_log)
    db.commit()
    db.refresh(db_log)
    return db_log

def update_notification_log(
    db: Session,
    log_id: int,
    status: models.NotificationStatus,
    error_message: Optional[str] = None,
) -> None:
    db_log = db.query(models.NotificationLog).filter(models.NotificationLog.id == log_id).first()
    if not db_log:
        return
    db_log.status = status
    db_log.attempts = (db_log.attempts or 0) + 1
    db_log.error_message = error_message
    if status == models.NotificationStatus.sent:
        db_log.sent_at = datetime.now(timezone.utc)
    db.commit()

def get_notification_logs(
    db: Session,
    appointment_id: Optional[int] = None,
    status: Optional[models.NotificationStatus] = None,
    limit: int = 100,
) -> List[models.NotificationLog]:
    query = db.query(models.NotificationLog)
    if appointment_id:
        query = query.filter(models.NotificationLog.appointment_id == appointment_id)
    if status:
        query = query.filter(models.NotificationLog.status == status)
    return query.order_by(models.NotificationLog.id.desc()).limit(limit).all()

# ==================== AUDIT LOG ====================

def create_audit_log(
    db: Session,
    actor: Optional[schemas.Actor],
    action: models.AuditAction,
    resource_type: str,
    resource_id: Optional[int] = None,
    details: Optional[str] = None,
    new_values: Optional[Dict[str, Any]] = None,
) -> models.AuditLog:
    """Stage an audit row in the caller's transaction."""
    db_log = models.AuditLog(
        actor_id=actor.user_id if actor else None,
        actor_role=actor.role.value if actor else "system",
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        new_values=new_values,
        timestamp=datetime.now(timezone.utc)
    )
    db.add(db_log)
    return db_log
