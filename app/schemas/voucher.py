"""Voucher schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class VoucherDefinition(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    type: str
    code: Optional[str] = None
    discount_amount: Optional[Decimal] = None
    discount_percentage: Optional[Decimal] = None
    expires_at: Optional[datetime] = None


class UserVoucher(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: str
    granted_at: Optional[datetime] = None
    redeemed_at: Optional[datetime] = None
    voucher: VoucherDefinition


class VoucherGrantRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: UUID = Field(alias="userId")
    trigger: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class VoucherGrantResponse(BaseModel):
    granted: bool
    user_voucher_id: Optional[UUID] = None
