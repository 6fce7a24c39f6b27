"""
Checkout Orchestrator

Prices the domain server-side, applies the caller's best voucher when one is
requested, and opens a hosted payment session. The purchase intent (domain,
user, voucher, portfolio) travels in session metadata: it is the only data
the fulfillment webhook trusts later.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from urllib.parse import quote
from uuid import UUID

from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import DomainUnavailable, PortfolioNotOwned, VoucherNotApplicable
from app.crud import crud_domain_record, crud_user
from app.models.user import User
from app.services import vouchers
from app.services.payment_provider import PaymentProvider
from app.services.pricing import PricingEngine

logger = logging.getLogger("pfdomains.checkout")


@dataclass
class CheckoutResult:
    url: str
    session_id: str
    domain: str
    amount_cents: int
    list_price: Decimal
    final_price: Decimal
    voucher_id: Optional[str] = None


class CheckoutOrchestrator:
    def __init__(self, db: Session, pricing: PricingEngine, payments: PaymentProvider):
        self.db = db
        self.pricing = pricing
        self.payments = payments

    def _discounted_price(self, user_id: UUID, price: Decimal, voucher_id: str):
        """Voucher problems never block a purchase: fall back to the full price."""
        try:
            vouchers.require_applicable(self.db, user_id, voucher_id)
            application = vouchers.apply_best_voucher(self.db, user_id, price)
        except VoucherNotApplicable as e:
            logger.info("Voucher ignored for user %s: %s", user_id, e.detail)
            return price, None
        if application.user_voucher is None:
            return price, None
        return application.final_price, str(application.user_voucher.id)

    def create_checkout(
        self,
        user: User,
        domain: str,
        voucher_id: Optional[str] = None,
        portfolio_id: Optional[UUID] = None,
    ) -> CheckoutResult:
        quote_ = self.pricing.quote(domain)
        if not quote_.available:
            raise DomainUnavailable()
        domain = quote_.domain

        if crud_domain_record.get_live_for_domain(self.db, domain):
            raise DomainUnavailable("Domain is already held on the platform")

        if portfolio_id is not None and not crud_user.get_portfolio_for_owner(self.db, user.id, portfolio_id):
            raise PortfolioNotOwned()

        final_price, applied_voucher = quote_.total_price, None
        if voucher_id:
            final_price, applied_voucher = self._discounted_price(user.id, quote_.total_price, voucher_id)

        amount_cents = int((final_price * 100).to_integral_value())
        base_url = settings.FRONTEND_URL.rstrip("/")
        session = self.payments.create_session(
            amount_cents=amount_cents,
            description=f"Domain Registration: {domain}",
            metadata={
                "domain": domain,
                "userId": str(user.id),
                "voucherId": applied_voucher or "",
                "portfolioId": str(portfolio_id) if portfolio_id else "",
            },
            success_url=f"{base_url}/profile?tab=Domain+Management&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/profile?tab=Domain+Management&domain={quote(domain)}",
            customer_email=user.email,
        )
        logger.info(
            "Checkout created for %s by user %s: %s (list %s)",
            domain, user.id, final_price, quote_.total_price,
        )
        return CheckoutResult(
            url=session.url,
            session_id=session.id,
            domain=domain,
            amount_cents=amount_cents,
            list_price=quote_.total_price,
            final_price=final_price,
            voucher_id=applied_voucher,
        )
