import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Optional

from flask import render_template

from audit.log_buffer import LogBuffer
from audit.logger import logger
from config import GmailCredentials
from exceptions.monitor_exceptions import ConfigurationError, UpstreamError
from models.failures import FailureEvent

NEXT_STEPS = (
    "Check the customer's payment method",
    "Contact the customer if necessary",
    "Retry the payment if appropriate",
    "Update the status in Airtable when resolved",
)


def alert_subject(event: FailureEvent) -> str:
    return f"🚨 Payment Failed - {event.customer_email}"


def render_alert(event: FailureEvent, sender: str, recipient: str,
                 sent_at: Optional[datetime] = None) -> EmailMessage:
    """Build the alert email. Needs an active Flask app context for templates."""
    context = {
        "event": event,
        "failed_at": (sent_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S"),
        "next_steps": NEXT_STEPS,
    }

    message = EmailMessage()
    message["Subject"] = alert_subject(event)
    message["From"] = sender
    message["To"] = recipient
    message.set_content(render_template("failed_payment_alert.txt", **context))
    message.add_alternative(
        render_template("failed_payment_alert.html", **context),
        subtype="html",
    )
    return message


class EmailAlertNotifier:
    def __init__(self, credentials: Optional[GmailCredentials], log_buffer: LogBuffer):
        self._credentials = credentials
        self._log = log_buffer

    def _send(self, event: FailureEvent) -> None:
        creds = self._credentials
        if creds is None:
            raise ConfigurationError("Gmail credentials not configured")

        message = render_alert(event, sender=creds.user, recipient=creds.recipient)

        try:
            with smtplib.SMTP_SSL(creds.smtp_host, creds.smtp_port) as smtp:
                smtp.login(creds.user, creds.app_password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise UpstreamError("SMTP delivery failed", str(exc)) from exc

    def notify(self, event: FailureEvent) -> bool:
        try:
            self._send(event)
        except ConfigurationError as exc:
            self._log.error("Error sending email alert", str(exc))
            return False
        except UpstreamError as exc:
            self._log.error("Error sending email alert", exc.detail)
            return False
        except Exception as exc:
            logger.exception("Unexpected error sending email alert")
            self._log.error("Error sending email alert", str(exc))
            return False

        self._log.info("Email alert sent successfully", event.customer_email)
        return True
