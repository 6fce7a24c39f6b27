"""
Voucher Engine

Grants catalog vouchers on triggers, picks the best active voucher for a
price, and redeems it. Selecting and redeeming are separate steps: a checkout
abandoned before payment never consumes a voucher.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import VoucherNotApplicable
from app.crud import crud_voucher
from app.models.voucher import UserVoucher, UserVoucherStatus, VoucherType
from app.services.pricing import to_cents

logger = logging.getLogger("pfdomains.vouchers")


@dataclass
class VoucherApplication:
    final_price: Decimal
    discount: Decimal
    user_voucher: Optional[UserVoucher] = None


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _is_expired(user_voucher: UserVoucher, now: datetime) -> bool:
    expires_at = _as_utc(user_voucher.voucher.expires_at)
    return expires_at is not None and expires_at <= now


def voucher_discount(user_voucher: UserVoucher, price: Decimal) -> Decimal:
    """Absolute discount this voucher gives on ``price`` (never above the price)."""
    definition = user_voucher.voucher
    discount = Decimal("0")
    if definition.discount_amount:
        discount = Decimal(definition.discount_amount)
    if definition.discount_percentage:
        discount = price * Decimal(definition.discount_percentage) / Decimal(100)
    if (
        definition.type == VoucherType.FREE_DOMAIN.value
        and not definition.discount_amount
        and not definition.discount_percentage
    ):
        discount = price
    return min(discount, price)


def grant_voucher(db: Session, user_id: UUID, trigger: str,
                  metadata: Optional[dict] = None) -> Optional[UserVoucher]:
    """Grant the catalog voucher for ``trigger``; re-granting is a no-op."""
    voucher = crud_voucher.get_catalog_by_trigger(db, trigger)
    if not voucher:
        return None
    try:
        granted = crud_voucher.create_user_voucher(
            db, user_id=user_id, voucher_id=voucher.id, metadata=metadata,
        )
    except IntegrityError:
        db.rollback()
        logger.debug("Voucher %s already granted to user %s", voucher.id, user_id)
        return None
    logger.info("Granted voucher %s (%s) to user %s", voucher.name, trigger, user_id)
    return granted


def get_active_vouchers(db: Session, user_id: UUID) -> List[UserVoucher]:
    """Active, unexpired grants; expired ones are flipped to ``expired`` on the way."""
    now = datetime.now(timezone.utc)
    active = []
    for user_voucher in crud_voucher.get_active_for_user(db, user_id):
        if _is_expired(user_voucher, now):
            crud_voucher.set_status(db, db_obj=user_voucher, status=UserVoucherStatus.EXPIRED.value)
            continue
        active.append(user_voucher)
    return active


def require_applicable(db: Session, user_id: UUID, user_voucher_id: str) -> UserVoucher:
    """Check that the voucher id named at checkout is one of the caller's active grants."""
    try:
        voucher_uuid = UUID(str(user_voucher_id))
    except ValueError:
        raise VoucherNotApplicable(f"Unknown voucher {user_voucher_id}")
    for user_voucher in get_active_vouchers(db, user_id):
        if user_voucher.id == voucher_uuid:
            return user_voucher
    raise VoucherNotApplicable(f"Voucher {user_voucher_id} is not active for this user")


def apply_best_voucher(db: Session, user_id: UUID, price: Decimal) -> VoucherApplication:
    """Pick the voucher with the largest absolute discount; final price never below zero."""
    price = Decimal(price)
    best: Optional[UserVoucher] = None
    best_discount = Decimal("0")

    for user_voucher in get_active_vouchers(db, user_id):
        discount = voucher_discount(user_voucher, price)
        if discount > best_discount:
            best, best_discount = user_voucher, discount

    if best is None:
        return VoucherApplication(final_price=price, discount=Decimal("0"))

    final_price = max(price - best_discount, Decimal("0"))
    return VoucherApplication(
        final_price=to_cents(final_price),
        discount=to_cents(best_discount),
        user_voucher=best,
    )


def redeem_voucher(db: Session, user_voucher_id: UUID) -> Optional[UserVoucher]:
    user_voucher = crud_voucher.get_user_voucher(db, user_voucher_id)
    if not user_voucher:
        logger.warning("Voucher %s not found for redemption", user_voucher_id)
        return None
    if user_voucher.status == UserVoucherStatus.REDEEMED.value:
        return user_voucher
    logger.info("Redeeming voucher: %s", user_voucher_id)
    return crud_voucher.set_status(
        db,
        db_obj=user_voucher,
        status=UserVoucherStatus.REDEEMED.value,
        redeemed_at=datetime.now(timezone.utc),
    )
