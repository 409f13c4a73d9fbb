"""
Decoding of verified Stripe webhook bodies.

Only two event types carry a failed payment. Everything else decodes to
IgnoredEvent so callers never touch an untyped payload.
"""
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from exceptions.monitor_exceptions import VerificationError
from models.failures import PaymentIntentView

PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"

HANDLED_EVENT_TYPES = (PAYMENT_INTENT_FAILED, INVOICE_PAYMENT_FAILED)


@dataclass(frozen=True)
class PaymentIntentFailed:
    event_id: Optional[str]
    payment_intent: PaymentIntentView
    event_type: str = PAYMENT_INTENT_FAILED


@dataclass(frozen=True)
class InvoicePaymentFailed:
    event_id: Optional[str]
    invoice_id: Optional[str]
    payment_intent_id: Optional[str]
    event_type: str = INVOICE_PAYMENT_FAILED


@dataclass(frozen=True)
class IgnoredEvent:
    event_id: Optional[str]
    event_type: str


StripeEvent = Union[PaymentIntentFailed, InvoicePaymentFailed, IgnoredEvent]


def _data_object(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    data = payload.get("data")
    obj = data.get("object") if isinstance(data, Mapping) else None
    if not isinstance(obj, Mapping):
        raise VerificationError("Event has no data.object")
    return obj


def decode_event(payload: Any) -> StripeEvent:
    if not isinstance(payload, Mapping):
        raise VerificationError("Event body must be a JSON object")

    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise VerificationError("Event has no type")

    event_id = payload.get("id")

    if event_type == PAYMENT_INTENT_FAILED:
        try:
            intent = PaymentIntentView.from_mapping(_data_object(payload))
        except ValueError as exc:
            raise VerificationError(f"Invalid payment intent: {exc}") from exc
        return PaymentIntentFailed(event_id=event_id, payment_intent=intent)

    if event_type == INVOICE_PAYMENT_FAILED:
        invoice = _data_object(payload)
        payment_intent = invoice.get("payment_intent")
        # Expanded invoices embed the whole payment intent object
        if isinstance(payment_intent, Mapping):
            payment_intent = payment_intent.get("id")
        return InvoicePaymentFailed(
            event_id=event_id,
            invoice_id=invoice.get("id"),
            payment_intent_id=payment_intent or None,
        )

    return IgnoredEvent(event_id=event_id, event_type=event_type)
