"""Domain purchase and ownership schemas."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    domain: str
    voucher_id: Optional[str] = Field(default=None, alias="voucherId")
    portfolio_id: Optional[UUID] = Field(default=None, alias="portfolioId")


class CheckoutResponse(BaseModel):
    url: str


class WebhookAck(BaseModel):
    received: bool = True


class OwnDomainCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    domain: str
    portfolio_id: Optional[UUID] = Field(default=None, alias="portfolioId")


class DomainRecordOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    domain: str
    portfolio_id: Optional[UUID] = None
    type: str
    status: str
    dns_configured: bool = False
    registered_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    auto_renew: bool = False
    payment_intent_id: Optional[str] = None
    failure_reason: Optional[str] = None


class AttentionRecord(DomainRecordOut):
    user_id: UUID
    saga_state: Optional[str] = None


class FulfillmentRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_intent_id: str
    domain: str
    state: str
    routed: bool = False
    route_error: Optional[str] = None
    last_error: Optional[str] = None
