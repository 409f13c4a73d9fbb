import time
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request

from audit.log_buffer import MAX_SNAPSHOT
from audit.logger import logger
from extensions import limiter
from models.failures import FailureEvent
from services.registry import get_services

monitor_bp = Blueprint("monitor", __name__)

ENDPOINTS = {
    "GET /": "This status page",
    "GET /health": "Health check endpoint",
    "GET /logs": "View recent logs",
    "POST /test": "Test the monitoring system",
    "POST /webhook/stripe": "Stripe webhook endpoint for payment failures",
    "GET /webhook/setup": "Get webhook setup instructions",
    "GET /airtable/setup": "Instructions for setting up the Airtable table",
}


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def build_test_event() -> FailureEvent:
    return FailureEvent(
        payment_id=f"test_payment_intent_{int(time.time() * 1000)}",
        customer_email="test@example.com",
        customer_id="test_customer",
        amount_minor_units=2000,
        currency="usd",
        failure_code="card_declined",
        failure_message="Your card was declined (test)",
    )


@monitor_bp.route("/", methods=["GET"])
def status():
    services = get_services()
    return jsonify({
        "name": "Stripe Payment Monitor Agent",
        "description": "Monitors Stripe for failed payments and sends alerts via Gmail while logging to Airtable",
        "status": "active",
        "endpoints": ENDPOINTS,
        "lastStarted": services.started_at.isoformat(),
    })


@monitor_bp.route("/health", methods=["GET"])
def health():
    services = get_services()
    return jsonify({
        "status": "healthy",
        "timestamp": _now_iso(),
        "uptime": round(services.uptime(), 3),
        "services": services.settings.service_status(),
    })


@monitor_bp.route("/logs", methods=["GET"])
def logs():
    limit = request.args.get("limit", MAX_SNAPSHOT, type=int)
    return jsonify(get_services().log_buffer.snapshot(limit=limit))


@monitor_bp.route("/test", methods=["POST"])
@limiter.limit("5 per minute")
def run_test():
    """
    Sends a synthetic failed payment through Airtable and email.

    Both deliveries are attempted whatever the other one returns; each is
    reported on its own.
    """
    services = get_services()

    try:
        services.log_buffer.info("Test endpoint called")
        outcome = services.dispatcher.deliver(build_test_event())
    except Exception as exc:
        logger.exception("Test run failed")
        services.log_buffer.error("Test failed", str(exc))
        return jsonify({
            "success": False,
            "error": str(exc),
            "timestamp": _now_iso(),
        }), 500

    return jsonify({
        "success": True,
        "message": "Test completed",
        "results": outcome.as_results(),
        "timestamp": _now_iso(),
    })
