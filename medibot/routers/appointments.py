# medibot/routers/appointments.py
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import models, schemas, security
from ..config import get_settings
from ..database import get_db
from ..limiter import limiter
from ..services import appointment_service
from ..services.notification_service import NotificationDispatcher, get_notification_dispatcher

router = APIRouter(
    prefix="/appointments",
    tags=["Appointments"],
    responses={
        403: {"model": schemas.ErrorResponse, "description": "Not allowed for this actor"},
        404: {"model": schemas.ErrorResponse, "description": "Not found"},
        409: {"model": schemas.ErrorResponse, "description": "Invalid state transition"},
    },
)


@router.post("", response_model=schemas.AppointmentCreated, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_settings().booking_rate_limit)
def create_appointment(
    request: Request,
    appointment: schemas.AppointmentCreate,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.require_patient),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Book an appointment; the doctor is chosen automatically unless doctorId is given."""
    db_appointment = appointment_service.create_appointment(db, appointment, actor, notifier)
    return schemas.AppointmentCreated(
        appointment_id=db_appointment.id,
        status=db_appointment.status,
        doctor_id=db_appointment.doctor_id,
        doctor_name=db_appointment.doctor_name,
        consultation_fee=db_appointment.consultation_fee,
    )


@router.get("", response_model=List[schemas.AppointmentResponse])
def list_appointments(
    patient_id: Optional[str] = Query(None, alias="patientId"),
    doctor_id: Optional[int] = Query(None, alias="doctorId"),
    appointment_status: Optional[models.AppointmentStatus] = Query(None, alias="status"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    return appointment_service.list_appointments(
        db, actor,
        patient_id=patient_id,
        doctor_id=doctor_id,
        status=appointment_status,
        limit=limit,
    )


@router.get("/upcoming", response_model=List[schemas.AppointmentResponse])
def list_upcoming_appointments(
    days: int = Query(7, ge=0, le=365),
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    return appointment_service.upcoming_appointments(db, actor, days=days)


@router.get("/stats", response_model=schemas.AppointmentStats)
def read_appointment_stats(
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    return appointment_service.appointment_stats(db, actor)


@router.get("/{appointment_id}", response_model=schemas.AppointmentResponse)
def read_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    return appointment_service.get_appointment(db, appointment_id, actor)


@router.put("/{appointment_id}/respond", response_model=schemas.AppointmentResponse)
def respond_to_appointment(
    appointment_id: int,
    response: schemas.AppointmentRespond,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.require_role("doctor", "admin")),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """Approve or reject a pending appointment. Only the first response is accepted."""
    return appointment_service.respond_to_appointment(
        db, appointment_id, response.decision, response.doctor_notes, actor, notifier
    )


@router.patch("/{appointment_id}/status", response_model=schemas.AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    update: schemas.AppointmentStatusUpdate,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.get_current_actor),
):
    return appointment_service.change_appointment_status(db, appointment_id, update.status, actor)


@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: schemas.Actor = Depends(security.require_admin),
):
    appointment_service.delete_appointment(db, appointment_id, actor)
