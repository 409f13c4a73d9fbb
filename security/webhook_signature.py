import json
from functools import wraps

import stripe
from flask import g, jsonify, request

from exceptions.monitor_exceptions import VerificationError
from services.registry import get_services

SIGNATURE_HEADER = "Stripe-Signature"


def verify_stripe_signature(payload: str, signature, secret: str, tolerance: int) -> dict:
    """
    Verifies a Stripe webhook body and returns it decoded.

    Security checks:
    - The Stripe-Signature header must be present
    - Its timestamp must be within `tolerance` seconds (replay protection)
    - One of its v1 signatures must match HMAC-SHA256 of "<timestamp>.<body>"
    """
    if not signature:
        raise VerificationError(f"Missing {SIGNATURE_HEADER} header")

    try:
        stripe.WebhookSignature.verify_header(payload, signature, secret, tolerance)
    except stripe.SignatureVerificationError as exc:
        raise VerificationError(str(exc)) from exc

    try:
        return json.loads(payload)
    except ValueError as exc:
        raise VerificationError("Invalid payload") from exc


def require_stripe_signature(f):
    """
    Flask decorator that enforces Stripe signature validation.

    The verified body is exposed as `g.stripe_payload`. When no signing
    secret is configured the endpoint is disabled rather than accepting
    events it cannot verify.
    """

    @wraps(f)
    def decorated(*args, **kwargs):
        services = get_services()
        webhook = services.settings.webhook

        if webhook is None:
            services.log_buffer.error(
                "Webhook rejected: signing secret not configured",
                "STRIPE_WEBHOOK_SECRET",
            )
            return jsonify({"error": "Webhook endpoint not configured"}), 503

        # Raw request body must be used for signature validation
        payload = request.get_data(as_text=True)

        try:
            g.stripe_payload = verify_stripe_signature(
                payload,
                request.headers.get(SIGNATURE_HEADER),
                webhook.signing_secret,
                webhook.tolerance_seconds,
            )
        except VerificationError as exc:
            services.log_buffer.error("Webhook signature verification failed", str(exc))
            return jsonify({"error": f"Webhook Error: {exc}"}), 400

        return f(*args, **kwargs)

    return decorated
