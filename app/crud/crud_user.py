from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session
from app.models.portfolio import Portfolio
from app.models.user import User


def get(db: Session, user_id: UUID) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_portfolio_for_owner(db: Session, user_id: UUID, portfolio_id: UUID) -> Optional[Portfolio]:
    return db.query(Portfolio).filter(
        Portfolio.id == portfolio_id,
        Portfolio.user_id == user_id,
    ).first()
