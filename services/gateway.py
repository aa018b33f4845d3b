"""Stripe adapter.

The booking core only talks to the `PaymentGateway` surface below; the Stripe
SDK is confined to this module and configured per instance instead of through
the global `stripe.api_key`.
"""
import json
import logging

import stripe

logger = logging.getLogger(__name__)


class PaymentGateway:
    def construct_event(self, payload: bytes, signature: str) -> dict:
        raise NotImplementedError

    def refund(self, payment_ref: str) -> dict:
        raise NotImplementedError

    def create_checkout(self, booking, success_url: str, cancel_url: str) -> dict:
        raise NotImplementedError

    def retrieve_checkout(self, session_id: str) -> dict:
        raise NotImplementedError


class StripeGateway(PaymentGateway):
    def __init__(self, api_key, webhook_secret, currency="myr"):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.currency = currency

    def construct_event(self, payload, signature):
        """Verify the Stripe-Signature header and return the event as a dict.

        Raises stripe.SignatureVerificationError / ValueError on a bad event.
        """
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            payload,
            signature or "",
            self.webhook_secret,
            stripe.Webhook.DEFAULT_TOLERANCE,
        )
        return json.loads(payload)

    def refund(self, payment_ref):
        refund = stripe.Refund.create(payment_intent=payment_ref, api_key=self.api_key)
        logger.info("Stripe refund %s created for %s", refund["id"], payment_ref)
        return {"id": refund["id"], "status": refund["status"]}

    def create_checkout(self, booking, success_url, cancel_url):
        service_name = booking.service.name if booking.service else "Session"
        session = stripe.checkout.Session.create(
            api_key=self.api_key,
            mode="payment",
            line_items=[{
                "price_data": {
                    "currency": self.currency,
                    "product_data": {"name": f"{service_name} ({booking.booking_date.isoformat()})"},
                    "unit_amount": int(booking.price_paid) * 100,  # smallest unit (sen)
                },
                "quantity": 1,
            }],
            customer_email=booking.customer_email,
            client_reference_id=str(booking.id),
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={"booking_id": str(booking.id)},
        )
        return {"id": session["id"], "url": session["url"]}

    def retrieve_checkout(self, session_id):
        """Return the session as a dict, or None when Stripe does not know the id."""
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.api_key)
        except stripe.InvalidRequestError as exc:
            logger.info("Checkout session %s not found: %s", session_id, exc)
            return None
        metadata = session["metadata"] or {}
        return {
            "id": session["id"],
            "client_reference_id": session["client_reference_id"],
            "payment_status": session["payment_status"],
            "metadata": {"booking_id": metadata["booking_id"]} if "booking_id" in metadata else {},
        }
