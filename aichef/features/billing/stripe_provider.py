"""
Stripe billing provider.

Implements BillingProvider using per-call API keys, so no module-level
stripe.api_key is mutated and several providers can coexist in one process.
"""
import json
import logging
from typing import Dict, Optional

import stripe

from aichef.core.config import Settings
from aichef.core.errors import AuthenticityError, ProviderError, ValidationError
from aichef.features.billing.provider import BillingEvent, event_from_payload

logger = logging.getLogger("aichef.billing")

SIGNATURE_HEADER = "stripe-signature"


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        price_id: str,
        api_version: Optional[str] = None,
        tolerance: int = stripe.Webhook.DEFAULT_TOLERANCE,
    ):
        if not secret_key:
            raise ProviderError("STRIPE_SECRET_KEY not configured")
        if not webhook_secret:
            raise ProviderError("STRIPE_WEBHOOK_SECRET not configured")

        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.price_id = price_id
        self.api_version = api_version
        self.tolerance = tolerance

    @classmethod
    def from_settings(cls, cfg: Settings) -> "StripeProvider":
        return cls(
            secret_key=cfg.STRIPE_SECRET_KEY or "",
            webhook_secret=cfg.STRIPE_WEBHOOK_SECRET or "",
            price_id=cfg.STRIPE_PREMIUM_PRICE_ID,
            api_version=cfg.STRIPE_API_VERSION,
        )

    def create_checkout_session(
        self,
        *,
        user_id: str,
        email: str,
        checkout_session_id: str,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """Create the premium subscription checkout session."""
        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                stripe_version=self.api_version,
                idempotency_key=f"checkout-{checkout_session_id}",
                payment_method_types=["card"],
                line_items=[{"price": self.price_id, "quantity": 1}],
                mode="subscription",
                success_url=f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=cancel_url,
                client_reference_id=user_id,
                customer_email=email,
                metadata={
                    "userId": user_id,
                    "checkoutSessionId": checkout_session_id,
                    "source": "web_client",
                },
            )
        except stripe.StripeError as e:
            message = e.user_message or str(e) or "Failed to create checkout session"
            logger.warning(f"[billing] stripe checkout session creation failed: {message}")
            raise ProviderError(message)
        return session.id

    def parse_webhook(self, headers: Dict[str, str], body: bytes) -> BillingEvent:
        """Verify Stripe webhook signature and parse event."""
        sig_header = _header(headers, SIGNATURE_HEADER)
        if not sig_header:
            raise AuthenticityError("No Stripe signature found")

        try:
            payload = body.decode("utf-8")
        except UnicodeDecodeError:
            raise AuthenticityError("Invalid payload encoding")

        try:
            stripe.WebhookSignature.verify_header(payload, sig_header, self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise AuthenticityError(f"Invalid signature: {e}")

        try:
            event = json.loads(payload)
        except ValueError as e:
            raise ValidationError(f"Invalid payload: {e}")
        if not isinstance(event, dict):
            raise ValidationError("Invalid payload: expected a JSON object")

        return event_from_payload(event)


def _header(headers: Dict[str, str], name: str) -> Optional[str]:
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return None
