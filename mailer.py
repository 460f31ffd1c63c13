import logging
import smtplib
from email.mime.text import MIMEText

from config import Settings

logger = logging.getLogger(__name__)


class Mailer:
    """Plain-text SMTP mail. Port 465 uses implicit SSL, anything else STARTTLS."""

    def __init__(self, settings: Settings):
        self.host = settings.email_host
        self.port = settings.email_port
        self.username = settings.email_username
        self.password = settings.email_password
        self.from_email = settings.email_from
        self.from_name = settings.email_from_name

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.from_email)

    def send(self, to_email: str, subject: str, body: str) -> bool:
        """Send a message; failures are logged and reported as False"""
        if not self.is_configured:
            logger.warning("Email transport not configured, skipping send to %s", to_email)
            return False

        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email

        try:
            if self.port == 465:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=15)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=15)
            with server:
                if self.port != 465:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %s", to_email, e)
            return False

        logger.info("Email sent to %s", to_email)
        return True
