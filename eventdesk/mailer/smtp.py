"""Outgoing mail over SMTP."""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from pathlib import Path

import jinja2

from eventdesk.core.config import settings

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"

# Autoescape so event fields typed by users cannot inject markup
env = jinja2.Environment(
    loader=jinja2.FileSystemLoader(TEMPLATES_DIR),
    autoescape=True,
)


def render_invite(event, link: str) -> tuple[str, str]:
    """Return (subject, html body) for an invitation to ``event``."""
    subject = f"Invitation to {event.name}"
    body = env.get_template("invite_email.html").render(event=event, link=link)
    return subject, body


def send_mail(to_email: str, subject: str, body: str) -> None:
    """Send an HTML email. Raises smtplib.SMTPException or OSError on failure."""
    sender = settings.smtp_from or settings.smtp_username
    msg = MIMEMultipart("alternative")
    msg["From"] = formataddr((settings.app_name, sender))
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.attach(MIMEText(body, "html"))

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30) as server:
        if settings.smtp_use_tls:
            server.starttls()
        if settings.smtp_username:
            server.login(settings.smtp_username, settings.smtp_password)
        server.send_message(msg)
    logger.info(f"Email sent to {to_email}")
