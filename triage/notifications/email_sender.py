"""
Email delivery of conversation summaries.
Sends over SMTP/SSL in the default executor so the event loop is not blocked.
"""

import asyncio
import json
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, Optional, Union

from app.core.config import settings

logger = logging.getLogger(__name__)


def format_summary_body(summary: Union[str, Dict[str, Any]]) -> str:
    """Render a summary as the email body (pretty-printed JSON for structured data)."""
    if isinstance(summary, str):
        return summary
    return json.dumps(summary, ensure_ascii=False, indent=2)


class EmailSender:
    """SMTP-backed notification sink."""

    def __init__(
        self,
        host: str = None,
        port: int = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
        subject: str = None,
        timeout: int = None
    ):
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USERNAME
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.sender = sender or settings.EMAIL_SENDER or self.username
        self.subject = subject or settings.EMAIL_SUBJECT
        self.timeout = timeout or settings.SMTP_TIMEOUT

    def build_message(self, address: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender or ""
        message["To"] = address
        message["Subject"] = self.subject
        message.set_content(body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as server:
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message)

    async def send(self, address: str, body: str) -> bool:
        """Send one email; returns False instead of raising on failure."""
        if not address or "@" not in address:
            logger.warning(f"Refusing to send summary to invalid address {address!r}")
            return False

        message = self.build_message(address, body)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Error sending summary email to {address}: {e}")
            return False

        logger.info(f"Summary email sent to {address}")
        return True


# Global sender instance
email_sender = EmailSender()
