import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class Portfolio(Base):
    """Portfolio reference used for ownership checks and routing metadata."""
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String, nullable=True)
    portfolio_type = Column(String(50), nullable=False, default="general")  # handyman, localVendor, ...

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="portfolios")
