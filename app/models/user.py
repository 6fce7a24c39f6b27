import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Uuid, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class User(Base):
    """Account owning portfolios and domains (managed by the account module)."""
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    status = Column(String, default="active")
    is_superuser = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    portfolios = relationship("Portfolio", back_populates="user")
    domains = relationship(
        "DomainRecord",
        back_populates="user",
        order_by="DomainRecord.created_at",
    )

    @property
    def is_active(self):
        return self.status == "active"
