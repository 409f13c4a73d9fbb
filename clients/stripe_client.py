from typing import Optional

import stripe

from config import StripeCredentials
from exceptions.monitor_exceptions import ConfigurationError, UpstreamError


# Each lookup goes out exactly once. The stripe library retries 5xx and
# connection errors by default, so every request turns that off.
MAX_NETWORK_RETRIES = 0


def _describe(exc: stripe.StripeError) -> str:
    return getattr(exc, "user_message", None) or str(exc)


class StripeGateway:
    """
    Read-only Stripe API access.

    The API key is passed per request so several apps (or tests) can run in
    the same process with different keys.
    """

    def __init__(self, credentials: Optional[StripeCredentials]):
        self._credentials = credentials

    @property
    def configured(self) -> bool:
        return self._credentials is not None

    def _request_options(self) -> dict:
        if self._credentials is None:
            raise ConfigurationError("STRIPE_SECRET_KEY not configured")
        return {
            "api_key": self._credentials.secret_key,
            "max_network_retries": MAX_NETWORK_RETRIES,
        }

    def retrieve_customer(self, customer_id: str) -> dict:
        options = self._request_options()
        try:
            customer = stripe.Customer.retrieve(customer_id, **options)
        except stripe.StripeError as exc:
            raise UpstreamError("Stripe customer lookup failed", _describe(exc)) from exc
        return customer.to_dict()

    def retrieve_payment_intent(self, payment_intent_id: str) -> dict:
        options = self._request_options()
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, **options)
        except stripe.StripeError as exc:
            raise UpstreamError("Stripe payment intent lookup failed", _describe(exc)) from exc
        return intent.to_dict()
