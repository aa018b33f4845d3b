from flask import Blueprint, request, jsonify, current_app

from services import get_services

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")


@webhook_bp.post("/stripe")
def stripe_webhook():
    if not current_app.config.get("STRIPE_WEBHOOK_SECRET"):
        return jsonify(error="Webhook secret not configured"), 500

    sig_header = request.headers.get("Stripe-Signature", "")
    payload = request.get_data()

    # InvalidSignature propagates to the 400 handler; every verified event is acknowledged
    outcome = get_services().reconciler.handle(payload, sig_header)
    return jsonify(received=True, type=outcome.event_type), 200
