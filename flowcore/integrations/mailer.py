import uuid
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

import aiosmtplib

from flowcore.config import settings
from flowcore.core.logging import logger

class SmtpNotConfiguredError(RuntimeError):
    pass

class Mailer:
    """SMTP sender; node config overrides the SMTP_* settings."""

    @staticmethod
    async def send(
        to: List[str],
        subject: str,
        content: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        use_tls: Optional[bool] = None,
        timeout: float = 30,
    ) -> Dict[str, Any]:
        host = host or settings.SMTP_HOST
        if not host:
            raise SmtpNotConfiguredError("SMTP not configured: set smtp_host on the node or SMTP_HOST")
        port = port or settings.SMTP_PORT
        username = username or settings.SMTP_USER
        password = password or settings.SMTP_PASSWORD
        sender = sender or settings.SMTP_FROM or username

        message_id = f"<{uuid.uuid4()}@flowcore>"
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["To"] = ", ".join(to)
        if sender:
            msg["From"] = sender
        msg["Message-ID"] = message_id
        msg.set_content(content)

        tls = port == 465 if use_tls is None else use_tls
        await aiosmtplib.send(
            msg,
            hostname=host,
            port=port,
            username=username or None,
            password=password or None,
            use_tls=tls,
            start_tls=(not tls and port == 587),
            timeout=timeout,
        )
        logger.info(f"Email sent: to={to} subject={subject!r} host={host}")
        return {"success": True, "message_id": message_id, "recipients": to}
