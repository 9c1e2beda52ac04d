"""Email notification service."""
import asyncio
import logging
import smtplib
from email.message import EmailMessage

from ..config import EmailConfig

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Position risk alert"


class EmailNotifier:
    """Mail risk alerts over STARTTLS; cycle logs stay on chat channels."""

    def __init__(self, config: EmailConfig, timeout: float = 30.0) -> None:
        self._config = config
        self._timeout = timeout

    @property
    def configured(self) -> bool:
        cfg = self._config
        return bool(cfg.alert_email and cfg.sender_email and cfg.sender_password)

    def _compose(self, body: str, subject: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._config.sender_email
        msg["To"] = self._config.alert_email
        msg["Subject"] = subject or DEFAULT_SUBJECT
        msg.set_content(body)
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        cfg = self._config
        with smtplib.SMTP(cfg.smtp_server, cfg.smtp_port, timeout=self._timeout) as server:
            server.starttls()
            server.login(cfg.sender_email, cfg.sender_password)
            server.send_message(msg)

    async def send_alert(self, message: str, subject: str = "") -> bool:
        if not self.configured:
            logger.warning("Email alert skipped: recipient or SMTP credentials missing")
            return False

        # smtplib blocks; keep it off the event loop.
        try:
            await asyncio.to_thread(self._deliver, self._compose(message, subject))
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Alert email to %s failed: %s", self._config.alert_email, e)
            return False
        logger.info("Alert email sent to %s", self._config.alert_email)
        return True

    async def send_log(self, message: str, silent: bool = True) -> bool:
        return False
