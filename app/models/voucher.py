import enum
import uuid
from sqlalchemy import (
    Column, String, Boolean, DateTime, ForeignKey, Numeric, JSON, Uuid,
    UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class VoucherType(str, enum.Enum):
    DISCOUNT = "discount"
    FREE_DOMAIN = "free_domain"


class VoucherTrigger(str, enum.Enum):
    FIRST_SUBSCRIPTION = "first_subscription"
    ANNIVERSARY = "anniversary"
    MANUAL = "manual"


class UserVoucherStatus(str, enum.Enum):
    ACTIVE = "active"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


class Voucher(Base):
    """Voucher catalog entry."""
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String, nullable=False)
    type = Column(String(32), nullable=False)
    code = Column(String, nullable=True)
    discount_amount = Column(Numeric(10, 2), nullable=True)
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    auto_grant_on = Column(String(40), nullable=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    single_use = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class UserVoucher(Base):
    """A voucher granted to one user; at most one grant per (user, voucher)."""
    __table_args__ = (
        UniqueConstraint("user_id", "voucher_id", name="uq_user_vouchers_user_voucher"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    voucher_id = Column(Uuid, ForeignKey("vouchers.id"), nullable=False)
    status = Column(String(20), nullable=False, default=UserVoucherStatus.ACTIVE.value)
    granted_at = Column(DateTime(timezone=True), server_default=func.now())
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)

    voucher = relationship("Voucher", lazy="joined")
