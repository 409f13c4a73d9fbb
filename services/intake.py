from dataclasses import dataclass
from typing import Any, Mapping, Optional

from audit.log_buffer import LogBuffer
from clients.stripe_client import StripeGateway
from exceptions.monitor_exceptions import MonitorError, UpstreamError
from models.failures import FailureEvent, PaymentIntentView
from models.stripe_events import (
    InvoicePaymentFailed,
    PaymentIntentFailed,
    decode_event,
)
from services.alerts import EmailAlertNotifier
from services.enrichment import CustomerResolver
from services.ledger import AirtableRecorder


@dataclass(frozen=True)
class DeliveryOutcome:
    recorded: bool
    notified: bool

    @property
    def complete(self) -> bool:
        return self.recorded and self.notified

    def as_results(self) -> dict:
        return {
            "airtable": "success" if self.recorded else "failed",
            "email": "success" if self.notified else "failed",
        }


class FailedPaymentDispatcher:
    """
    Turns verified Stripe events into FailureEvents and fans each one out to
    the Airtable ledger and the email alert.

    The two deliveries are independent: both are always attempted and a
    failure of one is only reflected in the outcome and the log.
    """

    def __init__(
        self,
        gateway: StripeGateway,
        resolver: CustomerResolver,
        recorder: AirtableRecorder,
        notifier: EmailAlertNotifier,
        log_buffer: LogBuffer,
    ):
        self._gateway = gateway
        self._resolver = resolver
        self._recorder = recorder
        self._notifier = notifier
        self._log = log_buffer

    def handle_payload(self, payload: Mapping[str, Any]) -> Optional[DeliveryOutcome]:
        """
        Process one verified webhook body.

        Returns the delivery outcome, or None when the event produced no
        FailureEvent (ignored type, invoice without payment intent, failed
        payment intent lookup).
        """
        event = decode_event(payload)
        self._log.info("Received Stripe webhook", event.event_type)

        if isinstance(event, PaymentIntentFailed):
            return self.process_failed_payment(event.payment_intent)

        if isinstance(event, InvoicePaymentFailed):
            return self._handle_invoice(event)

        # IgnoredEvent
        self._log.info("Unhandled event type", event.event_type)
        return None

    def _handle_invoice(self, event: InvoicePaymentFailed) -> Optional[DeliveryOutcome]:
        if not event.payment_intent_id:
            self._log.info("Unhandled invoice without payment intent", event.invoice_id)
            return None

        try:
            raw_intent = self._gateway.retrieve_payment_intent(event.payment_intent_id)
            intent = PaymentIntentView.from_mapping(raw_intent)
        except UpstreamError as exc:
            self._log.error("Error retrieving payment intent from failed invoice", exc.detail)
            return None
        except (MonitorError, ValueError) as exc:
            self._log.error("Error retrieving payment intent from failed invoice", str(exc))
            return None

        return self.process_failed_payment(intent)

    def build_failure_event(self, intent: PaymentIntentView) -> FailureEvent:
        customer = self._resolver.resolve_customer(intent.customer_id)
        return FailureEvent.from_payment_intent(intent, customer)

    def process_failed_payment(self, intent: PaymentIntentView) -> DeliveryOutcome:
        failure = self.build_failure_event(intent)
        self._log.info("Processing failed payment", failure.payment_id)

        outcome = self.deliver(failure)

        if outcome.complete:
            self._log.info("Failed payment processed successfully", failure.payment_id)
        else:
            self._log.warn("Failed payment processed with some errors", failure.payment_id)
        return outcome

    def deliver(self, failure: FailureEvent) -> DeliveryOutcome:
        recorded = self._recorder.record(failure)
        notified = self._notifier.notify(failure)
        return DeliveryOutcome(recorded=recorded, notified=notified)
