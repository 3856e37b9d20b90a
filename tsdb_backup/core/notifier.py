"""Email alerts for failed runs.

The recipient and on/off switch come from the backup configuration
(`ENABLE_EMAIL_ALERTS`, `EMAIL_RECIPIENT`). The SMTP transport is read from
environment variables at send-time:
- SMTP_HOST (required)
- SMTP_PORT (optional; default 587)
- SMTP_USER (optional)
- SMTP_PASS (optional)
- SMTP_STARTTLS (optional; default "true")
- SMTP_FROM (optional; default "tsdb-backup@<hostname>")
"""

from __future__ import annotations

import logging
import os
import smtplib
import socket
from email.message import EmailMessage
from typing import List

from tsdb_backup.core.config import BackupConfiguration

logger = logging.getLogger(__name__)


def _get_bool(env_value: str | None, default: bool) -> bool:
    if env_value is None:
        return default
    return env_value.strip().lower() in {"1", "true", "yes", "on"}


def send_failure_email(config: BackupConfiguration, subject: str, body: str) -> bool:
    """Send a plaintext alert. Returns True when the message was handed to SMTP.

    Never raises: alert delivery problems are logged and must not change the
    outcome of the run that triggered them.
    """
    if not config.enable_email_alerts or not config.email_recipient:
        return False

    host = os.getenv("SMTP_HOST")
    if not host:
        logger.warning("alert_skipped | reason=smtp_host_missing subject=%s", subject)
        return False

    port = int(os.getenv("SMTP_PORT", "587"))
    user = os.getenv("SMTP_USER")
    password = os.getenv("SMTP_PASS")
    use_starttls = _get_bool(os.getenv("SMTP_STARTTLS"), True)
    from_addr = os.getenv("SMTP_FROM") or f"tsdb-backup@{socket.gethostname()}"

    to_addrs: List[str] = [addr.strip() for addr in config.email_recipient.split(",") if addr.strip()]
    if not to_addrs:
        return False

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = ", ".join(to_addrs)
    msg.set_content(body)

    try:
        with smtplib.SMTP(host=host, port=port, timeout=15) as smtp:
            if use_starttls:
                smtp.starttls()
            if user:
                smtp.login(user, password or "")
            smtp.send_message(msg)
    except (OSError, smtplib.SMTPException) as exc:
        logger.warning("alert_send_failed | subject=%s error=%s", subject, exc)
        return False

    logger.info("alert_sent | subject=%s recipients=%s", subject, len(to_addrs))
    return True
