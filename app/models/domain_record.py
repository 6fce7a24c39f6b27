"""
Per-user domain records.

One row per domain the user ever attempted to acquire or attach; rows are
appended by the fulfillment saga (success or failure branch) or created
directly for bring-your-own domains, never at checkout time.
"""
import enum
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, Uuid, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class DomainType(str, enum.Enum):
    PLATFORM = "platform"
    BRING_YOUR_OWN = "bring_your_own"


class DomainStatus(str, enum.Enum):
    PENDING_VERIFICATION = "pending_verification"
    ACTIVE = "active"
    FAILED_REGISTRATION = "failed_registration"
    MANUAL_INTERVENTION_REQUIRED = "manual_intervention_required"
    CANCELED = "canceled"


# Statuses that still hold the domain within the platform
LIVE_STATUSES = (DomainStatus.PENDING_VERIFICATION.value, DomainStatus.ACTIVE.value)
FAILURE_STATUSES = (
    DomainStatus.FAILED_REGISTRATION.value,
    DomainStatus.MANUAL_INTERVENTION_REQUIRED.value,
)


class DomainRecord(Base):
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    domain = Column(String(255), nullable=False, index=True)
    portfolio_id = Column(Uuid, ForeignKey("portfolios.id"), nullable=True)
    type = Column(String(32), nullable=False, default=DomainType.PLATFORM.value)
    status = Column(String(40), nullable=False, index=True)
    dns_configured = Column(Boolean, default=False)

    registered_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    auto_renew = Column(Boolean, default=False)

    # Idempotency token of the purchase; unique index closes the duplicate-delivery race
    payment_intent_id = Column(String(255), unique=True, nullable=True, index=True)
    saga_state = Column(String(40), nullable=True)
    failure_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="domains")
