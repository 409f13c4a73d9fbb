import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env for local development
load_dotenv()


def _env_flag(name, default):
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name):
    raw = os.getenv(name)
    return float(raw) if raw else None


class Config:
    # Stripe secret key used for customer and payment intent lookups.
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")

    # Signing secret of the Stripe webhook endpoint.
    # Without it the webhook endpoint is disabled (503) instead of
    # accepting unverifiable events.
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

    # Allowed clock skew between the Stripe-Signature timestamp and now.
    WEBHOOK_TOLERANCE_SECONDS = int(os.getenv("WEBHOOK_TOLERANCE_SECONDS", "300"))

    # Airtable table receiving one row per failed payment.
    AIRTABLE_API_KEY = os.getenv("AIRTABLE_API_KEY")
    AIRTABLE_BASE_ID = os.getenv("AIRTABLE_BASE_ID", "appUNIsu8KgvOlmi0")
    AIRTABLE_TABLE_NAME = os.getenv("AIRTABLE_TABLE_NAME", "Failed Payments")

    # Gmail account used as SMTP relay for alerts.
    GMAIL_USER = os.getenv("GMAIL_USER")
    GMAIL_APP_PASSWORD = os.getenv("GMAIL_APP_PASSWORD")
    ALERT_EMAIL = os.getenv("ALERT_EMAIL")
    SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "465"))

    # Unset means the HTTP client default (no timeout).
    HTTP_TIMEOUT_SECONDS = _env_float("HTTP_TIMEOUT_SECONDS")

    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", True)

    PORT = int(os.getenv("PORT", "3000"))


@dataclass(frozen=True)
class StripeCredentials:
    secret_key: str


@dataclass(frozen=True)
class WebhookCredentials:
    signing_secret: str
    tolerance_seconds: int = 300


@dataclass(frozen=True)
class AirtableCredentials:
    api_key: str
    base_id: str
    table_name: str
    timeout_seconds: Optional[float] = None


@dataclass(frozen=True)
class GmailCredentials:
    user: str
    app_password: str
    recipient: str
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 465


@dataclass(frozen=True)
class Settings:
    """
    Credentials grouped per capability.

    Each group is None when its environment variables are missing, so a
    component only has to check whether it received a handle instead of
    re-reading the environment on every call.
    """

    stripe: Optional[StripeCredentials]
    webhook: Optional[WebhookCredentials]
    airtable: Optional[AirtableCredentials]
    gmail: Optional[GmailCredentials]
    airtable_base_id: str
    airtable_table_name: str

    @classmethod
    def from_mapping(cls, config) -> "Settings":
        stripe_key = config.get("STRIPE_SECRET_KEY")
        signing_secret = config.get("STRIPE_WEBHOOK_SECRET")
        airtable_key = config.get("AIRTABLE_API_KEY")
        gmail_user = config.get("GMAIL_USER")
        gmail_password = config.get("GMAIL_APP_PASSWORD")

        base_id = config.get("AIRTABLE_BASE_ID") or Config.AIRTABLE_BASE_ID
        table_name = config.get("AIRTABLE_TABLE_NAME") or Config.AIRTABLE_TABLE_NAME

        return cls(
            stripe=StripeCredentials(stripe_key) if stripe_key else None,
            webhook=(
                WebhookCredentials(
                    signing_secret=signing_secret,
                    tolerance_seconds=int(config.get("WEBHOOK_TOLERANCE_SECONDS", 300)),
                )
                if signing_secret
                else None
            ),
            airtable=(
                AirtableCredentials(
                    api_key=airtable_key,
                    base_id=base_id,
                    table_name=table_name,
                    timeout_seconds=config.get("HTTP_TIMEOUT_SECONDS"),
                )
                if airtable_key
                else None
            ),
            gmail=(
                GmailCredentials(
                    user=gmail_user,
                    app_password=gmail_password,
                    recipient=config.get("ALERT_EMAIL") or gmail_user,
                    smtp_host=config.get("SMTP_HOST") or "smtp.gmail.com",
                    smtp_port=int(config.get("SMTP_PORT") or 465),
                )
                if gmail_user and gmail_password
                else None
            ),
            airtable_base_id=base_id,
            airtable_table_name=table_name,
        )

    def service_status(self) -> dict:
        def flag(handle):
            return "configured" if handle is not None else "missing"

        return {
            "stripe": flag(self.stripe),
            "gmail": flag(self.gmail),
            "airtable": flag(self.airtable),
            "webhook": flag(self.webhook),
        }
