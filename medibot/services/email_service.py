import asyncio
import os
from functools import lru_cache
from typing import Optional

import jinja2
import structlog
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from ..config import get_settings
from ..exceptions import NotificationDeliveryFailure
from ..schemas import AppointmentNotification

logger = structlog.get_logger(__name__)

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates", "email")


class EmailService:
    """SendGrid-backed notification gateway for appointment emails"""

    def __init__(self, api_key: Optional[str] = None, sender_email: Optional[str] = None,
                 dashboard_url: Optional[str] = None):
        settings = get_settings()
        self.sendgrid_api_key = api_key if api_key is not None else settings.sendgrid_api_key
        self.sender_email = sender_email or settings.sender_email
        self.dashboard_url = dashboard_url or settings.dashboard_url
        self.enabled = bool(self.sendgrid_api_key)

        if not self.enabled:
            logger.warning("sendgrid_disabled", reason="SENDGRID_API_KEY not set")

        self.sg = SendGridAPIClient(api_key=self.sendgrid_api_key) if self.enabled else None
        self.template_env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(TEMPLATE_DIR),
            autoescape=jinja2.select_autoescape(["html"]),
        )

    def render(self, notification: AppointmentNotification) -> str:
        template = self.template_env.get_template(f"{notification.notification_type.name}.html")
        return template.render(dashboard_url=self.dashboard_url, **notification.context)

    async def send(self, notification: AppointmentNotification) -> bool:
        """Send one notification. Returns False when email is not configured.

        Raises NotificationDeliveryFailure when SendGrid rejects or cannot be reached.
        """
        html_content = self.render(notification)

        if not self.enabled:
            logger.info(
                "email_skipped",
                to=notification.recipient,
                subject=notification.subject,
                notification_type=notification.notification_type.value,
            )
            return False

        mail = Mail(
            from_email=self.sender_email,
            to_emails=notification.recipient,
            subject=notification.subject,
            html_content=html_content
        )
        try:
            response = await asyncio.to_thread(self.sg.send, mail)
        except Exception as e:
            raise NotificationDeliveryFailure(f"SendGrid request failed: {e}") from e

        if response.status_code not in (200, 202):
            raise NotificationDeliveryFailure(f"SendGrid error: {response.status_code} - {response.body}")
        return True


@lru_cache()
def get_email_service() -> EmailService:
    return EmailService()
