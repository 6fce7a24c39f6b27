"""Voucher grant, best-voucher selection, clamping, redemption and expiry."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.core.exceptions import VoucherNotApplicable
from app.models.voucher import UserVoucher, UserVoucherStatus, VoucherTrigger, VoucherType
from app.services import vouchers


def test_largest_absolute_discount_wins(db, make_user, make_voucher):
    user = make_user()
    flat = make_voucher(user, discount_amount=Decimal("5.00"))
    make_voucher(user, discount_percentage=Decimal("10"))

    result = vouchers.apply_best_voucher(db, user.id, Decimal("40.00"))

    assert result.user_voucher.id == flat.id
    assert result.discount == Decimal("5.00")
    assert result.final_price == Decimal("35.00")


def test_percentage_wins_when_larger(db, make_user, make_voucher):
    user = make_user()
    make_voucher(user, discount_amount=Decimal("5.00"))
    pct = make_voucher(user, discount_percentage=Decimal("25"))

    result = vouchers.apply_best_voucher(db, user.id, Decimal("40.00"))

    assert result.user_voucher.id == pct.id
    assert result.final_price == Decimal("30.00")


def test_discount_clamped_at_zero(db, make_user, make_voucher):
    user = make_user()
    make_voucher(user, discount_amount=Decimal("50.00"))

    result = vouchers.apply_best_voucher(db, user.id, Decimal("30.00"))

    assert result.final_price == Decimal("0.00")
    assert result.discount == Decimal("30.00")


def test_free_domain_voucher_covers_full_price(db, make_user, make_voucher):
    user = make_user()
    make_voucher(user, voucher_type=VoucherType.FREE_DOMAIN.value)

    result = vouchers.apply_best_voucher(db, user.id, Decimal("13.17"))
    assert result.final_price == Decimal("0.00")


def test_no_vouchers_keeps_price(db, make_user):
    user = make_user()
    result = vouchers.apply_best_voucher(db, user.id, Decimal("13.17"))

    assert result.user_voucher is None
    assert result.final_price == Decimal("13.17")


def test_apply_does_not_consume_voucher(db, make_user, make_voucher):
    user = make_user()
    grant = make_voucher(user, discount_amount=Decimal("5.00"))

    vouchers.apply_best_voucher(db, user.id, Decimal("20.00"))
    db.refresh(grant)
    assert grant.status == UserVoucherStatus.ACTIVE.value


def test_redeem_marks_status_and_timestamp(db, make_user, make_voucher):
    user = make_user()
    grant = make_voucher(user, discount_amount=Decimal("5.00"))

    vouchers.redeem_voucher(db, grant.id)
    db.refresh(grant)

    assert grant.status == UserVoucherStatus.REDEEMED.value
    assert grant.redeemed_at is not None
    assert vouchers.apply_best_voucher(db, user.id, Decimal("20.00")).user_voucher is None


def test_grant_twice_is_a_noop(db, make_user, make_voucher):
    user = make_user()
    make_voucher(None, discount_amount=Decimal("5.00"), auto_grant_on=VoucherTrigger.ANNIVERSARY.value)

    first = vouchers.grant_voucher(db, user.id, VoucherTrigger.ANNIVERSARY.value, {"year": 1})
    second = vouchers.grant_voucher(db, user.id, VoucherTrigger.ANNIVERSARY.value, {"year": 1})

    assert first is not None
    assert second is None
    assert db.query(UserVoucher).filter(UserVoucher.user_id == user.id).count() == 1


def test_grant_without_catalog_entry_returns_none(db, make_user):
    user = make_user()
    assert vouchers.grant_voucher(db, user.id, "no_such_trigger") is None


def test_expired_voucher_is_skipped_and_marked(db, make_user, make_voucher):
    user = make_user()
    grant = make_voucher(
        user,
        discount_amount=Decimal("5.00"),
        expires_at=datetime.now(timezone.utc) - timedelta(days=1),
    )

    result = vouchers.apply_best_voucher(db, user.id, Decimal("20.00"))
    db.refresh(grant)

    assert result.user_voucher is None
    assert grant.status == UserVoucherStatus.EXPIRED.value


def test_require_applicable_rejects_foreign_voucher(db, make_user, make_voucher):
    owner, other = make_user(), make_user()
    grant = make_voucher(owner, discount_amount=Decimal("5.00"))

    assert vouchers.require_applicable(db, owner.id, str(grant.id)).id == grant.id
    with pytest.raises(VoucherNotApplicable):
        vouchers.require_applicable(db, other.id, str(grant.id))
    with pytest.raises(VoucherNotApplicable):
        vouchers.require_applicable(db, owner.id, "not-a-uuid")
