from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from threading import Thread

from .settings import Settings

logger = logging.getLogger(__name__)


def _smtp_configured(s: Settings) -> bool:
    return bool(
        s.enable_email
        and s.smtp_host
        and s.smtp_port
        and s.smtp_user
        and s.smtp_password
        and s.email_from
        and s.email_to
    )


def recycle_message(instance_id: str, reason: str, s: Settings) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = s.email_from
    msg["To"] = s.email_to
    msg["Subject"] = f"RECYCLE: {instance_id}"
    msg.set_content(f"Instance: {instance_id}\nAction: node recycle requested\nReason: {reason}")
    return msg


def send_recycle_mail(instance_id: str, reason: str, s: Settings) -> bool:
    """Deliver one recycle notice; every SMTP step is bounded by `smtp_timeout_s`."""
    if not _smtp_configured(s):
        return False
    try:
        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_s) as server:
            server.starttls()
            server.login(s.smtp_user, s.smtp_password)
            server.send_message(recycle_message(instance_id, reason, s))
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.warning("Recycle mail for %s failed: %s: %s", instance_id, type(e).__name__, e)
        return False


def notify_recycle(instance_id: str, reason: str, s: Settings) -> Thread | None:
    """Mail the recycle notice in the background; returns the sender thread, if any.

    Configured via RSN_ENABLE_EMAIL, RSN_SMTP_HOST / RSN_SMTP_PORT / RSN_SMTP_TIMEOUT_S,
    RSN_SMTP_USER / RSN_SMTP_PASSWORD and RSN_EMAIL_FROM / RSN_EMAIL_TO.
    """
    if not _smtp_configured(s):
        return None
    sender = Thread(target=send_recycle_mail, args=(instance_id, reason, s), daemon=True)
    sender.start()
    return sender
