# medibot/routers/notifications.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from .. import crud, models, schemas, security
from ..database import get_db

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    dependencies=[Depends(security.require_admin)],
)


@router.get("", response_model=List[schemas.NotificationLogResponse])
def list_notification_logs(
    appointment_id: Optional[int] = Query(None, alias="appointmentId"),
    notification_status: Optional[models.NotificationStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """Delivery records, newest first. Failed deliveries are the ones support looks at."""
    return crud.get_notification_logs(db, appointment_id=appointment_id, status=notification_status, limit=limit)
