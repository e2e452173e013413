"""
EduPortal Billing - Email Service

Handles transactional email sending via SMTP, or a mock provider that only
logs and records messages (development and tests).
"""

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List, Optional

from app.config import settings

logger = logging.getLogger(__name__)


class EmailProvider:
    """Email provider types."""
    SMTP = "smtp"
    MOCK = "mock"


@dataclass
class EmailMessage:
    """Email message data structure."""
    to: List[str]
    subject: str
    body_text: str
    body_html: Optional[str] = None
    reply_to: Optional[str] = None


class EmailService:
    """Service for sending transactional emails."""
    
    # Messages accepted by the mock provider, newest last
    sent_messages: List[EmailMessage] = []
    
    def __init__(self, provider: Optional[str] = None):
        self.from_email = settings.email_from or "noreply@eduportal.in"
        self.from_name = settings.mail_from_name
        self.provider = provider or settings.mail_provider
        
        self.smtp_host = settings.mail_server
        self.smtp_port = settings.mail_port
        self.smtp_username = settings.mail_username
        self.smtp_password = settings.mail_password
        self.smtp_use_tls = settings.mail_use_tls
    
    def _determine_provider(self) -> str:
        """SMTP only when explicitly selected and a host is configured."""
        if self.provider == EmailProvider.SMTP and self.smtp_host and self.smtp_username:
            return EmailProvider.SMTP
        return EmailProvider.MOCK
    
    async def send_email(self, message: EmailMessage) -> bool:
        """
        Send an email using the configured provider.
        Returns False instead of raising on delivery failure.
        """
        provider = self._determine_provider()
        
        try:
            if provider == EmailProvider.SMTP:
                return await self._send_via_smtp(message)
            return await self._send_mock(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email via {provider}: {e}")
            return False
    
    def _build_mime(self, message: EmailMessage) -> MIMEMultipart:
        msg = MIMEMultipart('alternative')
        msg['Subject'] = message.subject
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = ', '.join(message.to)
        
        if message.reply_to:
            msg['Reply-To'] = message.reply_to
        
        msg.attach(MIMEText(message.body_text, 'plain'))
        if message.body_html:
            msg.attach(MIMEText(message.body_html, 'html'))
        return msg
    
    def _deliver_smtp(self, message: EmailMessage) -> None:
        msg = self._build_mime(message)
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
            if self.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.smtp_username and self.smtp_password:
                server.login(self.smtp_username, self.smtp_password)
            server.sendmail(self.from_email, message.to, msg.as_string())
    
    async def _send_via_smtp(self, message: EmailMessage) -> bool:
        """Send email via SMTP without blocking the event loop."""
        await asyncio.to_thread(self._deliver_smtp, message)
        logger.info(f"Email sent via SMTP to {message.to}")
        return True
    
    async def _send_mock(self, message: EmailMessage) -> bool:
        """Mock email sending for development."""
        EmailService.sent_messages.append(message)
        logger.info(f"[MOCK EMAIL] To: {message.to} | Subject: {message.subject}")
        logger.debug(f"[MOCK EMAIL] Body: {message.body_text[:200]}...")
        return True
