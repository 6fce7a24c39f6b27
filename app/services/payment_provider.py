"""
Payment Provider (Stripe Checkout)

Outbound: hosted checkout sessions carrying the purchase intent in metadata.
Inbound: signature-verified webhook events reduced to ``PaymentCompleted``.
"""
import json
import logging
from dataclasses import dataclass
from typing import Dict, Optional

import stripe

from app.config import settings
from app.core.exceptions import PaymentProviderError, WebhookSignatureInvalid

logger = logging.getLogger("pfdomains.payments")

CHECKOUT_COMPLETED = "checkout.session.completed"


@dataclass
class CheckoutSession:
    id: str
    url: str


@dataclass
class PaymentCompleted:
    session_id: str
    payment_intent_id: str
    domain: str
    user_id: str
    voucher_id: Optional[str] = None
    portfolio_id: Optional[str] = None


class PaymentProvider:
    def __init__(self, api_key: str = None, webhook_secret: str = None):
        self.api_key = api_key if api_key is not None else settings.stripe_secret_key
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET

    def create_session(
        self,
        *,
        amount_cents: int,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        description: str,
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        params = dict(
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": settings.DOMAIN_CURRENCY,
                        "product_data": {"name": description},
                        "unit_amount": amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            # Metadata comes back verbatim on the webhook; values must be strings
            metadata={k: str(v) if v is not None else "" for k, v in metadata.items()},
            success_url=success_url,
            cancel_url=cancel_url,
        )
        if customer_email:
            params["customer_email"] = customer_email
        if settings.STRIPE_AUTOMATIC_TAX:
            params["automatic_tax"] = {"enabled": True}

        try:
            session = stripe.checkout.Session.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            logger.error("Stripe checkout session creation failed: %s", e)
            raise PaymentProviderError() from e

        logger.info("Checkout session %s created (%d cents)", session.id, amount_cents)
        return CheckoutSession(id=session.id, url=session.url)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> dict:
        """
        Verify the signature header against the raw body before trusting anything in it.

        Returns the decoded event body.
        """
        if not signature:
            raise WebhookSignatureInvalid("Missing Stripe-Signature header")
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Domain purchase webhook signature verification failed: %s", e)
            raise WebhookSignatureInvalid(str(e)) from e
        except ValueError as e:
            raise WebhookSignatureInvalid(f"Invalid payload: {e}") from e
        return json.loads(payload)

    @staticmethod
    def parse_completed(event: dict) -> Optional[PaymentCompleted]:
        """Return the purchase intent for completed checkouts, None for other event types."""
        if event.get("type") != CHECKOUT_COMPLETED:
            return None
        session = (event.get("data") or {}).get("object") or {}
        metadata = session.get("metadata") or {}
        payment_intent = session.get("payment_intent") or session.get("id")
        return PaymentCompleted(
            session_id=session.get("id"),
            payment_intent_id=payment_intent,
            domain=metadata.get("domain", ""),
            user_id=metadata.get("userId", ""),
            voucher_id=metadata.get("voucherId") or None,
            portfolio_id=metadata.get("portfolioId") or None,
        )
