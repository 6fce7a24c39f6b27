"""Domain routing schemas."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class DomainRouteCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    domain: str
    portfolio_id: Optional[UUID] = Field(default=None, alias="portfolioId")
    notes: Optional[str] = None


class DomainRouteUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    portfolio_id: UUID = Field(alias="portfolioId")


class DomainRoute(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    domain: str
    owner_user_id: UUID
    portfolio_id: Optional[UUID] = None
    portfolio_type: Optional[str] = None
    is_active: bool
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DomainLookup(BaseModel):
    portfolio_id: UUID = Field(serialization_alias="portfolioId")
    portfolio_type: str = Field(serialization_alias="portfolioType")
