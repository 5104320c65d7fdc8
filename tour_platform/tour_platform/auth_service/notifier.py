"""
Email notifiers used by the password reset flow.

SMTPNotifier delivers through aiosmtplib. LoggingNotifier writes the message to
the log instead, which is what development environments without an SMTP
relay use.
"""
from email.message import EmailMessage
import logging

import aiosmtplib

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Raised when an email could not be delivered"""
    pass


class LoggingNotifier:
    async def send(self, to: str, subject: str, body: str) -> None:
        # Dev: print the message to logs (simulate email)
        logger.info("[DEV] Email to %s | %s\n%s", to, subject, body)


class SMTPNotifier:
    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender: str = "no-reply@localhost",
        timeout: float = 30,
    ):
        self.host = host
        self.port = port
        self.username = username or None
        self.password = password or None
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "SMTPNotifier":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
            sender=settings.EMAIL_FROM,
        )

    async def send(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                start_tls=self.use_tls,
                timeout=self.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s via %s:%s: %s", to, self.host, self.port, e)
            raise NotificationError(f"Could not deliver email to {to}") from e

        logger.info("Email sent to %s: %s", to, subject)


def build_notifier(settings):
    if settings.SMTP_HOST:
        return SMTPNotifier.from_settings(settings)
    return LoggingNotifier()
