# medibot/services/notification_service.py
import asyncio
from typing import Callable, Optional, Protocol

import structlog
from fastapi import BackgroundTasks, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud, models
from ..database import SessionLocal
from ..exceptions import NotificationDeliveryFailure
from ..schemas import AppointmentNotification
from .email_service import get_email_service

logger = structlog.get_logger(__name__)


class NotificationGateway(Protocol):
    async def send(self, notification: AppointmentNotification) -> bool: ...


def get_notification_gateway() -> NotificationGateway:
    return get_email_service()


class NotificationDispatcher:
    """Queues notifications on the request's background tasks.

    The caller never waits for, or learns about, the delivery outcome.
    """

    def __init__(self, background_tasks: BackgroundTasks, gateway: NotificationGateway,
                 session_factory: Callable[[], Session] = SessionLocal):
        self.background_tasks = background_tasks
        self.gateway = gateway
        self.session_factory = session_factory

    def dispatch(self, notification: AppointmentNotification) -> None:
        self.background_tasks.add_task(
            deliver_notification, notification, self.gateway, self.session_factory
        )


def get_notification_dispatcher(
    background_tasks: BackgroundTasks,
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> NotificationDispatcher:
    return NotificationDispatcher(background_tasks, gateway)


def _record_pending(session_factory, notification: AppointmentNotification) -> Optional[int]:
    db = session_factory()
    try:
        return crud.create_notification_log(db, notification).id
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("notification_log_failed", error=str(e), appointment_id=notification.appointment_id)
        return None
    finally:
        db.close()


def _record_outcome(session_factory, log_id: Optional[int], status: models.NotificationStatus,
                    error: Optional[str] = None) -> None:
    if log_id is None:
        return
    db = session_factory()
    try:
        crud.update_notification_log(db, log_id, status, error)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("notification_log_failed", error=str(e), log_id=log_id)
    finally:
        db.close()


async def deliver_notification(
    notification: AppointmentNotification,
    gateway: NotificationGateway,
    session_factory: Callable[[], Session] = SessionLocal,
) -> models.NotificationStatus:
    """Best-effort delivery. Failures are logged and recorded, never raised."""
    log_id = await asyncio.to_thread(_record_pending, session_factory, notification)
    try:
        sent = await gateway.send(notification)
    except NotificationDeliveryFailure as e:
        logger.error(
            "notification_delivery_failed",
            notification_type=notification.notification_type.value,
            recipient=notification.recipient,
            appointment_id=notification.appointment_id,
            error=str(e),
        )
        await asyncio.to_thread(_record_outcome, session_factory, log_id, models.NotificationStatus.failed, str(e))
        return models.NotificationStatus.failed
    except Exception as e:
        logger.exception(
            "notification_delivery_error",
            notification_type=notification.notification_type.value,
            recipient=notification.recipient,
            appointment_id=notification.appointment_id,
        )
        await asyncio.to_thread(_record_outcome, session_factory, log_id, models.NotificationStatus.failed, str(e))
        return models.NotificationStatus.failed

    status = models.NotificationStatus.sent if sent else models.NotificationStatus.skipped
    await asyncio.to_thread(_record_outcome, session_factory, log_id, status)
    logger.info(
        "notification_delivered" if sent else "notification_skipped",
        notification_type=notification.notification_type.value,
        recipient=notification.recipient,
        appointment_id=notification.appointment_id,
    )
    return status
