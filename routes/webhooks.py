from flask import Blueprint, g, jsonify, request

from audit.logger import logger
from exceptions.monitor_exceptions import VerificationError
from models.stripe_events import HANDLED_EVENT_TYPES
from security.webhook_signature import require_stripe_signature
from services.registry import get_services

# Blueprint responsible for handling incoming Stripe webhooks
webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhook")


@webhooks_bp.route("/stripe", methods=["POST"])
@require_stripe_signature
def stripe_webhook():
    """
    Stripe webhook endpoint for failed payments.

    Responsibilities:
    - Validate webhook authenticity (Stripe-Signature, via decorator)
    - Classify the event and build the failed payment record
    - Record it in Airtable and send the email alert

    The acknowledgment only reflects that the event was taken in. Airtable
    and email failures are visible in the logs, not in the response.
    """
    services = get_services()

    try:
        services.dispatcher.handle_payload(g.stripe_payload)
    except VerificationError as exc:
        services.log_buffer.error("Webhook payload rejected", str(exc))
        return jsonify({"error": f"Webhook Error: {exc}"}), 400
    except Exception as exc:
        # Fallback: full trace in the audit log, generic response to Stripe
        logger.exception("Unhandled error processing Stripe webhook")
        services.log_buffer.error("Webhook processing failed", str(exc))
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"received": True}), 200


@webhooks_bp.route("/setup", methods=["GET"])
def webhook_setup():
    webhook_url = f"https://{request.host}/webhook/stripe"

    return jsonify({
        "instructions": "To complete setup, register this webhook URL in your Stripe dashboard",
        "webhookUrl": webhook_url,
        "events": list(HANDLED_EVENT_TYPES),
        "steps": [
            "1. Go to https://dashboard.stripe.com/webhooks",
            '2. Click "Add endpoint"',
            f"3. Enter URL: {webhook_url}",
            f"4. Select events: {', '.join(HANDLED_EVENT_TYPES)}",
            "5. Add the webhook secret to your environment variables as STRIPE_WEBHOOK_SECRET",
        ],
    })
