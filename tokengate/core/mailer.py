"""
Email adapters for the tokengate backend.

The default implementation uses SMTP, reading credentials from Settings. The
notifier is an explicitly constructed object (connect, health_check, close)
handed to the services at startup.
"""

from __future__ import annotations

from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import logging
import re
import smtplib
import ssl
import threading
from typing import Optional, Protocol

from tokengate.core.config import Settings
from tokengate.domain.errors import DeliveryFailed

logger = logging.getLogger(__name__)

# mantem so o prefixo do token nos logs
_TOKEN_IN_LINK = re.compile(r"(token=[A-Za-z0-9_\-]{6})[A-Za-z0-9_\-]*")


@dataclass(frozen=True)
class Message:
    subject: str
    html_body: str
    text_body: Optional[str] = None


class Notifier(Protocol):
    def connect(self) -> None: ...

    def health_check(self) -> bool: ...

    def close(self) -> None: ...

    def deliver(self, to_email: str, message: Message) -> None: ...


class SmtpNotifier:
    """Sends messages over a persistent SMTP connection, reconnecting once on drop."""

    def __init__(self, settings: Settings, timeout: float = 10.0) -> None:
        self.settings = settings
        self.timeout = timeout
        self._server: Optional[smtplib.SMTP] = None
        self._lock = threading.Lock()

    def _open(self) -> smtplib.SMTP:
        settings = self.settings
        port = settings.smtp_port or 465
        context = ssl.create_default_context()
        if port == 465:
            server: smtplib.SMTP = smtplib.SMTP_SSL(settings.smtp_host, port, context=context, timeout=self.timeout)
        else:
            server = smtplib.SMTP(settings.smtp_host, port, timeout=self.timeout)
            server.ehlo()
            server.starttls(context=context)
        server.login(settings.smtp_user, settings.smtp_password)
        return server

    def connect(self) -> None:
        if not self.settings.smtp_configured:
            logger.warning("SMTP configuration missing; deliveries will fail")
            return
        with self._lock:
            if self._server is None:
                self._server = self._open()

    def health_check(self) -> bool:
        with self._lock:
            if self._server is None:
                return False
            try:
                code, _ = self._server.noop()
            except OSError:
                return False
            return code == 250

    def close(self) -> None:
        with self._lock:
            server, self._server = self._server, None
        if server is None:
            return
        try:
            server.quit()
        except (smtplib.SMTPException, OSError):
            logger.debug("SMTP quit failed; connection already gone")

    def _build(self, to_email: str, message: Message) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self.settings.smtp_from
        msg["To"] = to_email
        plain = message.text_body or message.html_body
        msg.attach(MIMEText(plain, "plain", "utf-8"))
        msg.attach(MIMEText(message.html_body, "html", "utf-8"))
        return msg

    def deliver(self, to_email: str, message: Message) -> None:
        if not self.settings.smtp_configured:
            raise DeliveryFailed("Configuracao SMTP ausente.")
        payload = self._build(to_email, message).as_string()
        with self._lock:
            for attempt in (1, 2):
                try:
                    if self._server is None:
                        self._server = self._open()
                    self._server.sendmail(self.settings.smtp_from, [to_email], payload)
                    return
                except smtplib.SMTPServerDisconnected:
                    self._server = None
                    if attempt == 2:
                        raise DeliveryFailed("Servidor SMTP desconectou.")
                except (smtplib.SMTPException, OSError) as exc:
                    self._server = None
                    logger.warning("SMTP delivery failed: %s", exc.__class__.__name__)
                    raise DeliveryFailed("Falha ao enviar e-mail.") from exc


def redact_tokens(text: str) -> str:
    return _TOKEN_IN_LINK.sub(r"\1...", text)


class ConsoleNotifier:
    """Development notifier: logs the plain-text body, with tokens truncated, instead of sending it."""

    def connect(self) -> None:
        logger.warning("Console notifier active: e-mails are NOT sent, only logged with truncated links")

    def health_check(self) -> bool:
        return True

    def close(self) -> None:
        return None

    def deliver(self, to_email: str, message: Message) -> None:
        body = redact_tokens(message.text_body or message.html_body)
        logger.info("[email] to=%s subject=%s\n%s", to_email, message.subject, body)


def build_notifier(settings: Settings) -> Notifier:
    """SMTP when configured; outside prod, fall back to the console notifier."""
    if settings.smtp_configured or settings.app_env == "prod":
        return SmtpNotifier(settings)
    return ConsoleNotifier()
