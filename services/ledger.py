from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

import requests

from audit.log_buffer import LogBuffer
from audit.logger import logger
from config import AirtableCredentials
from exceptions.monitor_exceptions import ConfigurationError, UpstreamError
from models.failures import FailureEvent

AIRTABLE_API_URL = "https://api.airtable.com/v0"

RECORD_STATUS = "Failed"


def build_record_fields(event: FailureEvent, failed_at: datetime) -> dict:
    return {
        "Payment Intent ID": event.payment_id,
        "Customer Email": event.customer_email,
        "Amount": float(event.amount),
        "Currency": event.currency_code,
        "Failure Code": event.failure_code_label,
        "Failure Message": event.failure_message_label,
        "Failed At": failed_at.isoformat(),
        "Customer ID": event.customer_id,
        "Status": RECORD_STATUS,
    }


def _error_detail(exc: requests.RequestException):
    response = exc.response
    if response is None:
        return str(exc)
    # Airtable answers errors as {"error": {"type": ..., "message": ...}}
    try:
        return response.json()
    except ValueError:
        return (response.text or "")[:1000] or str(exc)


class AirtableRecorder:
    def __init__(self, credentials: Optional[AirtableCredentials], log_buffer: LogBuffer):
        self._credentials = credentials
        self._log = log_buffer

    def table_url(self) -> str:
        creds = self._credentials
        return f"{AIRTABLE_API_URL}/{creds.base_id}/{quote(creds.table_name, safe='')}"

    def _submit(self, event: FailureEvent) -> None:
        if self._credentials is None:
            raise ConfigurationError("AIRTABLE_API_KEY not configured")

        record = {"fields": build_record_fields(event, datetime.now(timezone.utc))}

        try:
            response = requests.post(
                self.table_url(),
                json={"records": [record]},
                headers={
                    "Authorization": f"Bearer {self._credentials.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._credentials.timeout_seconds,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise UpstreamError("Airtable request failed", _error_detail(exc)) from exc

    def record(self, event: FailureEvent) -> bool:
        try:
            self._submit(event)
        except ConfigurationError as exc:
            self._log.error("Error logging to Airtable", str(exc))
            return False
        except UpstreamError as exc:
            self._log.error("Error logging to Airtable", exc.detail)
            return False
        except Exception as exc:
            logger.exception("Unexpected error logging to Airtable")
            self._log.error("Error logging to Airtable", str(exc))
            return False

        self._log.info("Successfully logged failed payment to Airtable", event.payment_id)
        return True
