"""Email service for waiting-list notifications."""
import asyncio
import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Iterable, Optional

from clinic_scheduling.config import SchedulingSettings, get_settings
from clinic_scheduling.services.external_timeouts import SMTP_TIMEOUT

logger = logging.getLogger(__name__)

SLOT_DISPLAY_FORMAT = "%A, %B %d, %Y at %H:%M"

HTML_LAYOUT = """
<html>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <h2>{heading}</h2>
    {body}
</body>
</html>
"""

BUTTON = """
    <p style="text-align: center; margin: 30px 0;">
        <a href="{url}" style="background-color: #4F46E5; color: white; padding: 12px 24px;
           text-decoration: none; border-radius: 6px; display: inline-block;">{label}</a>
    </p>
"""


def render_email(heading: str, paragraphs: Iterable[str], button: Optional[tuple] = None) -> tuple:
    """Build the (html, text) pair for a notification from plain-text paragraphs."""
    paragraphs = list(paragraphs)
    body = "\n".join(f"    <p>{p}</p>" for p in paragraphs)
    text_lines = [heading, ""] + paragraphs

    if button:
        label, url = button
        body += BUTTON.format(url=url, label=label)
        text_lines += ["", f"{label}: {url}"]

    return HTML_LAYOUT.format(heading=heading, body=body), "\n".join(text_lines)


class EmailService:
    """SMTP sender for offer, confirmation and slot-taken emails."""

    def __init__(self, settings: Optional[SchedulingSettings] = None):
        settings = settings or get_settings()
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.username = settings.SMTP_USERNAME
        self.password = settings.SMTP_PASSWORD
        self.sender = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
        self.use_tls = settings.SMTP_USE_TLS

    def _build_message(self, to_email: str, subject: str, html: str, text: Optional[str]) -> MIMEMultipart:
        message = MIMEMultipart('alternative')
        message['Subject'] = subject
        message['From'] = self.sender
        message['To'] = to_email
        if text:
            message.attach(MIMEText(text, 'plain'))
        message.attach(MIMEText(html, 'html'))
        return message

    def send_email_sync(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """Blocking send; returns False instead of raising on SMTP or socket errors."""
        message = self._build_message(to_email, subject, html_content, text_content)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send '{subject}' to {to_email}: {e}")
            return False

        logger.info(f"Sent '{subject}' to {to_email}")
        return True

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        # smtplib blocks; keep it off the event loop
        return await asyncio.to_thread(self.send_email_sync, to_email, subject, html_content, text_content)

    async def send_waitlist_offer(
        self,
        to_email: str,
        patient_name: str,
        slot_local: datetime,
        accept_url: str,
        expires_in_hours: int = 24
    ) -> bool:
        """Tell a waiting patient that a slot opened up."""
        when = slot_local.strftime(SLOT_DISPLAY_FORMAT)
        html, text = render_email(
            f"Good news, {patient_name}!",
            [
                f"An appointment slot matching your waiting list preferences has opened up: {when}",
                "Slots are offered to everyone on the waiting list. The first person to confirm gets it.",
                f"This offer expires in {expires_in_hours} hours.",
            ],
            button=("Confirm Appointment", accept_url),
        )
        return await self.send_email(to_email, "An appointment slot is available", html, text)

    async def send_waitlist_confirmed(self, to_email: str, patient_name: str, slot_local: datetime) -> bool:
        when = slot_local.strftime(SLOT_DISPLAY_FORMAT)
        html, text = render_email(
            f"You're booked, {patient_name}",
            [f"Your appointment from the waiting list is confirmed for {when}."],
        )
        return await self.send_email(to_email, "Your appointment is confirmed", html, text)

    async def send_waitlist_slot_taken(self, to_email: str, patient_name: str, slot_local: datetime) -> bool:
        """Tell the other offered patients the slot went to someone else."""
        when = slot_local.strftime(SLOT_DISPLAY_FORMAT)
        html, text = render_email(
            f"Sorry, {patient_name}",
            [
                f"The slot on {when} was confirmed by another patient.",
                "You can join the waiting list again to be notified of the next opening.",
            ],
        )
        return await self.send_email(to_email, "The appointment slot has been taken", html, text)
