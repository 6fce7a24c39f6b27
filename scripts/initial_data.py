"""Seed the voucher catalog and, optionally, a support superuser."""
import logging
import os
from decimal import Decimal

from app.db.session import SessionLocal
from app.models.user import User
from app.models.voucher import Voucher, VoucherTrigger, VoucherType

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

VOUCHER_CATALOG = [
    dict(
        name="Free domain with first subscription",
        type=VoucherType.FREE_DOMAIN.value,
        code="FIRSTDOMAIN",
        auto_grant_on=VoucherTrigger.FIRST_SUBSCRIPTION.value,
        single_use=True,
    ),
    dict(
        name="Anniversary domain discount",
        type=VoucherType.DISCOUNT.value,
        code="ANNIV5",
        discount_amount=Decimal("5.00"),
        auto_grant_on=VoucherTrigger.ANNIVERSARY.value,
        single_use=True,
    ),
]


def init_db() -> None:
    db = SessionLocal()
    try:
        for entry in VOUCHER_CATALOG:
            exists = db.query(Voucher).filter(Voucher.auto_grant_on == entry["auto_grant_on"]).first()
            if exists:
                logger.info("Voucher for %s already present", entry["auto_grant_on"])
                continue
            logger.info("Creating voucher: %s", entry["name"])
            db.add(Voucher(**entry))

        support_email = os.getenv("SUPPORT_SUPERUSER_EMAIL")
        if support_email and not db.query(User).filter(User.email == support_email).first():
            logger.info("Creating support superuser: %s", support_email)
            db.add(User(email=support_email, full_name="Support", is_superuser=True))

        db.commit()
    finally:
        db.close()


if __name__ == "__main__":
    logger.info("Creating initial data")
    init_db()
    logger.info("Initial data created")
