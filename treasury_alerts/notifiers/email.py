"""
Email SMTP notifier.
"""

import html
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from treasury_alerts.database.models import Channel
from .base import Notifier, NotificationResult
from .formatter import RenderedMessage


class EmailNotifier(Notifier):
    """Sends notifications via email SMTP."""

    channel = Channel.EMAIL

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        from_address: str,
        timeout: float = 10,
    ):
        """
        Initialize email notifier.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port
            smtp_user: SMTP username
            smtp_password: SMTP password
            from_address: Sender email address
            timeout: Connection timeout in seconds
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_address = from_address
        self.timeout = timeout

    def send(self, destination: str, message: RenderedMessage) -> NotificationResult:
        """Send message to a comma-separated list of addresses."""
        try:
            mime = self._create_message(destination, message)

            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                server.starttls()
                if self.smtp_user:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(mime)

            return NotificationResult(success=True, channel="email")

        except smtplib.SMTPAuthenticationError as e:
            return NotificationResult(
                success=False,
                channel="email",
                error=f"Authentication failed: {str(e)}",
            )
        except Exception as e:
            return NotificationResult(
                success=False,
                channel="email",
                error=f"SMTP error: {str(e)}",
            )

    def _create_message(self, destination: str, message: RenderedMessage) -> MIMEMultipart:
        """Create email message with plain and HTML parts."""
        mime = MIMEMultipart("alternative")
        mime["Subject"] = message.title
        mime["From"] = self.from_address
        mime["To"] = ", ".join(a.strip() for a in destination.split(",") if a.strip())

        mime.attach(MIMEText(message.body, "plain"))
        mime.attach(MIMEText(self._create_html_body(message), "html"))
        return mime

    def _create_html_body(self, message: RenderedMessage) -> str:
        """Create HTML email body."""
        return f"""
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; margin: 0; padding: 20px; }}
        .alert-box {{
            border-left: 4px solid #F7931A;
            padding: 15px;
            background-color: #f9f9f9;
        }}
        .title {{ font-size: 18px; font-weight: bold; color: #333; }}
        .body {{ margin-top: 15px; color: #555; white-space: pre-wrap; font-family: monospace; }}
    </style>
</head>
<body>
    <div class="alert-box">
        <div class="title">{html.escape(message.title)}</div>
        <div class="body">{html.escape(message.body)}</div>
    </div>
</body>
</html>
"""
