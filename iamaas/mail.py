from __future__ import annotations

from email.message import EmailMessage
import logging
import smtplib
from typing import Callable, Protocol

from iamaas.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

SmtpFactory = Callable[[str, int, float], smtplib.SMTP]

_CREDENTIALS_SUBJECT = "Your IAM realm is ready"
_CREDENTIALS_BODY = """\
Hello,

Your identity realm has been provisioned.

Admin console: {console_url}
Username: {username}
Temporary password: {password}

You will be asked to choose a new password on first login.
"""


class MailDeliveryError(RuntimeError):
    pass


class Notifier(Protocol):
    def send_credentials(self, email: str, username: str, password: str, console_url: str) -> None: ...


def _default_smtp_factory(host: str, port: int, timeout: float) -> smtplib.SMTP:
    return smtplib.SMTP(host, port, timeout=timeout)


class SmtpMailer:
    """Delivers customer credential emails through an SMTP relay."""

    def __init__(
        self,
        *,
        host: str | None,
        port: int = 587,
        sender: str,
        username: str | None = None,
        password: str | None = None,
        starttls: bool = True,
        timeout: float = 10.0,
        smtp_factory: SmtpFactory | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._username = username
        self._password = password
        self._starttls = starttls
        self._timeout = timeout
        self._smtp_factory = smtp_factory or _default_smtp_factory

    @classmethod
    def from_settings(cls, settings: Settings, *, smtp_factory: SmtpFactory | None = None) -> SmtpMailer:
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.smtp_sender,
            username=settings.smtp_username,
            password=settings.smtp_password,
            starttls=settings.smtp_starttls,
            timeout=settings.smtp_timeout_sec,
            smtp_factory=smtp_factory,
        )

    def send_credentials(self, email: str, username: str, password: str, console_url: str) -> None:
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = email
        message["Subject"] = _CREDENTIALS_SUBJECT
        message.set_content(
            _CREDENTIALS_BODY.format(console_url=console_url, username=username, password=password)
        )
        self._deliver(message)
        logger.info("Sent realm credentials to %s", email)

    def _deliver(self, message: EmailMessage) -> None:
        if not self._host:
            raise MailDeliveryError("SMTP host is not configured")
        try:
            with self._smtp_factory(self._host, self._port, self._timeout) as smtp:
                if self._starttls:
                    smtp.starttls()
                if self._username:
                    smtp.login(self._username, self._password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(f"Failed to send mail to {message['To']}: {exc}") from exc


notifier = SmtpMailer.from_settings(default_settings)
