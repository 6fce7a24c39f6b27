"""
Domain routing table: normalized domain -> portfolio.

Entries are soft-deleted (``is_active=False``) instead of removed, so a
deleted-then-recreated domain re-activates its row rather than briefly 404ing.
"""
import uuid
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, Uuid, func
from app.db.base_class import Base


class DomainRoute(Base):
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    domain = Column(String(255), unique=True, nullable=False, index=True)
    owner_user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    portfolio_id = Column(Uuid, ForeignKey("portfolios.id"), nullable=True, index=True)
    portfolio_type = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    created_by = Column(Uuid, nullable=True)
    updated_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
