"""
Domain Purchase API

  GET  /pricecheck/{domain}   server-side quote
  POST /checkout              hosted payment page for a quoted domain
  POST /webhook               payment provider notifications (signed)
  POST /verify/{domain}       pull-based DNS verification
"""
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.orm import Session

from app.api import deps
from app.models.user import User
from app.schemas.domain import CheckoutRequest, CheckoutResponse, WebhookAck
from app.services import domain_verification
from app.services.checkout import CheckoutOrchestrator
from app.services.hosting_client import HostingDomainClient
from app.services.payment_provider import PaymentProvider
from app.services.pricing import PricingEngine
from app.tasks.fulfillment_tasks import fulfill_domain_task

router = APIRouter()
logger = logging.getLogger("pfdomains.payments")


@router.get("/pricecheck/{domain}")
def check_price_and_availability(
    domain: str,
    pricing: PricingEngine = Depends(deps.get_pricing_engine),
) -> Any:
    """Quote a domain. Unavailable domains come back as ``{"available": false}``."""
    return pricing.quote(domain).as_response()


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout_session(
    body: CheckoutRequest,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_active_user),
    pricing: PricingEngine = Depends(deps.get_pricing_engine),
    payments: PaymentProvider = Depends(deps.get_payment_provider),
) -> Any:
    result = CheckoutOrchestrator(db, pricing, payments).create_checkout(
        current_user,
        body.domain,
        voucher_id=body.voucher_id,
        portfolio_id=body.portfolio_id,
    )
    return CheckoutResponse(url=result.url)


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    payments: PaymentProvider = Depends(deps.get_payment_provider),
) -> Any:
    """
    Acknowledge immediately; fulfillment runs as a detached Celery task.

    Only a bad signature produces a non-200 answer. A broker outage is
    logged with the payment intent so support can replay the purchase.
    """
    payload = await request.body()
    event = payments.construct_event(payload, stripe_signature)

    completed = payments.parse_completed(event)
    if completed is None:
        logger.debug("Ignoring webhook event type %s", event.get("type"))
        return WebhookAck()

    if not completed.domain or not completed.user_id:
        logger.warning(
            "Completed checkout %s carries no domain metadata; nothing to fulfill",
            completed.session_id, extra={"payment_intent_id": completed.payment_intent_id},
        )
        return WebhookAck()

    try:
        fulfill_domain_task.delay(
            completed.domain,
            completed.user_id,
            completed.payment_intent_id,
            voucher_id=completed.voucher_id,
            portfolio_id=completed.portfolio_id,
        )
    except Exception as e:
        logger.error(
            "Could not dispatch fulfillment for %s: %s", completed.payment_intent_id, e,
            exc_info=True,
            extra={"domain": completed.domain, "payment_intent_id": completed.payment_intent_id},
        )
        return WebhookAck()

    logger.info(
        "Fulfillment dispatched for %s", completed.domain,
        extra={"domain": completed.domain, "payment_intent_id": completed.payment_intent_id},
    )
    return WebhookAck()


@router.post("/verify/{domain}")
def verify_domain(
    domain: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_active_user),
    hosting: HostingDomainClient = Depends(deps.get_hosting_client),
) -> Any:
    return domain_verification.verify(db, hosting, current_user.id, domain).as_response()
