from typing import List, Optional
from uuid import UUID
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.core.exceptions import DomainRouteConflict
from app.models.domain_route import DomainRoute


def get_by_domain(db: Session, domain: str) -> Optional[DomainRoute]:
    return db.query(DomainRoute).filter(DomainRoute.domain == domain).first()


def get_active(db: Session, domain: str) -> Optional[DomainRoute]:
    return db.query(DomainRoute).filter(
        DomainRoute.domain == domain,
        DomainRoute.is_active == True,  # noqa: E712
    ).first()


def list_for_owner(db: Session, owner_user_id: UUID) -> List[DomainRoute]:
    return (
        db.query(DomainRoute)
        .filter(DomainRoute.owner_user_id == owner_user_id, DomainRoute.is_active == True)  # noqa: E712
        .order_by(DomainRoute.domain)
        .all()
    )


def create(
    db: Session,
    *,
    domain: str,
    owner_user_id: UUID,
    portfolio_id: Optional[UUID],
    portfolio_type: Optional[str],
    notes: Optional[str] = None,
    actor_id: Optional[UUID] = None,
) -> DomainRoute:
    """
    Create (or re-activate) the route for ``domain``.

    The unique index on ``domain`` keeps one row per domain; an active row
    means the domain is taken and the call fails with a conflict.
    """
    existing = get_by_domain(db, domain)
    if existing is not None:
        if existing.is_active:
            raise DomainRouteConflict(f"Domain already mapped: {domain}")
        existing.is_active = True
        existing.owner_user_id = owner_user_id
        existing.portfolio_id = portfolio_id
        existing.portfolio_type = portfolio_type
        existing.notes = notes
        existing.updated_by = actor_id
        db.add(existing)
        db.commit()
        db.refresh(existing)
        return existing

    db_obj = DomainRoute(
        domain=domain,
        owner_user_id=owner_user_id,
        portfolio_id=portfolio_id,
        portfolio_type=portfolio_type,
        notes=notes,
        is_active=True,
        created_by=actor_id,
        updated_by=actor_id,
    )
    db.add(db_obj)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DomainRouteConflict(f"Domain already mapped: {domain}") from e
    db.refresh(db_obj)
    return db_obj


def update(db: Session, *, db_obj: DomainRoute, **fields) -> DomainRoute:
    for field, value in fields.items():
        setattr(db_obj, field, value)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj
