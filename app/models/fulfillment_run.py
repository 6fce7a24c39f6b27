"""
Persisted fulfillment saga state.

A run is claimed by inserting a row keyed by the payment intent (unique), so
concurrent duplicate webhook deliveries cannot both proceed, and a crash
mid-saga leaves the last reached state on disk for diagnosis.
"""
import enum
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, Uuid, func
from app.db.base_class import Base


class SagaState(str, enum.Enum):
    QUOTED = "quoted"
    REGISTERING = "registering"
    REGISTERED = "registered"
    ATTACHING = "attaching"
    ACTIVE = "active"
    PENDING_VERIFICATION = "pending_verification"
    FAILED_REGISTRATION = "failed_registration"
    MANUAL_INTERVENTION = "manual_intervention"


SAGA_TRANSITIONS = {
    SagaState.QUOTED: {SagaState.REGISTERING},
    SagaState.REGISTERING: {SagaState.REGISTERED, SagaState.FAILED_REGISTRATION},
    SagaState.REGISTERED: {SagaState.ATTACHING},
    SagaState.ATTACHING: {
        SagaState.ACTIVE,
        SagaState.PENDING_VERIFICATION,
        SagaState.MANUAL_INTERVENTION,
    },
    SagaState.ACTIVE: set(),
    SagaState.PENDING_VERIFICATION: set(),
    SagaState.FAILED_REGISTRATION: set(),
    SagaState.MANUAL_INTERVENTION: set(),
}


class FulfillmentRun(Base):
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    payment_intent_id = Column(String(255), unique=True, nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    domain = Column(String(255), nullable=False)
    portfolio_id = Column(Uuid, nullable=True)
    voucher_id = Column(String(64), nullable=True)   # user voucher grant id from checkout metadata

    state = Column(String(40), nullable=False, default=SagaState.QUOTED.value)
    last_error = Column(Text, nullable=True)
    routed = Column(Boolean, default=False)
    route_error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
