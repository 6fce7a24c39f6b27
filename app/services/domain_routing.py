"""
Domain Routing Store

Maps a normalized custom domain to the portfolio it serves. At most one
active entry exists per domain; removals only deactivate the entry.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import DomainNotFound, PortfolioNotOwned
from app.crud import crud_domain_route, crud_user
from app.middleware.custom_domain import invalidate_domain_cache
from app.models.domain_route import DomainRoute
from app.services.domain_names import require_domain

logger = logging.getLogger("pfdomains.routing")


def _portfolio_type(db: Session, user_id: UUID, portfolio_id: Optional[UUID]) -> Optional[str]:
    if portfolio_id is None:
        return None
    portfolio = crud_user.get_portfolio_for_owner(db, user_id, portfolio_id)
    if not portfolio:
        raise PortfolioNotOwned()
    return portfolio.portfolio_type


def create_mapping(
    db: Session,
    domain: str,
    user_id: UUID,
    portfolio_id: Optional[UUID] = None,
    notes: Optional[str] = None,
) -> DomainRoute:
    domain = require_domain(domain)
    portfolio_type = _portfolio_type(db, user_id, portfolio_id)
    route = crud_domain_route.create(
        db,
        domain=domain,
        owner_user_id=user_id,
        portfolio_id=portfolio_id,
        portfolio_type=portfolio_type,
        notes=notes,
        actor_id=user_id,
    )
    invalidate_domain_cache(domain)
    logger.info("Domain route created: %s → portfolio %s", domain, portfolio_id)
    return route


def ensure_mapping(db: Session, domain: str, user_id: UUID,
                   portfolio_id: Optional[UUID] = None) -> DomainRoute:
    """
    Create the route, or accept an active route the same user already owns.

    Lets fulfillment re-run the routing step on its own without tripping over
    its own earlier attempt.
    """
    domain = require_domain(domain)
    existing = crud_domain_route.get_active(db, domain)
    if existing is not None and existing.owner_user_id == user_id:
        if portfolio_id is not None and existing.portfolio_id != portfolio_id:
            return repoint_mapping(db, domain, user_id, portfolio_id)
        return existing
    return create_mapping(db, domain, user_id, portfolio_id)


def _owned_active(db: Session, domain: str, user_id: UUID) -> DomainRoute:
    route = crud_domain_route.get_active(db, require_domain(domain))
    if route is None or route.owner_user_id != user_id:
        raise DomainNotFound()
    return route


def repoint_mapping(db: Session, domain: str, user_id: UUID, portfolio_id: UUID) -> DomainRoute:
    route = _owned_active(db, domain, user_id)
    portfolio_type = _portfolio_type(db, user_id, portfolio_id)
    route = crud_domain_route.update(
        db,
        db_obj=route,
        portfolio_id=portfolio_id,
        portfolio_type=portfolio_type,
        updated_by=user_id,
    )
    invalidate_domain_cache(route.domain)
    logger.info("Domain route %s re-pointed to portfolio %s", route.domain, portfolio_id)
    return route


def deactivate_mapping(db: Session, domain: str, user_id: UUID) -> DomainRoute:
    route = _owned_active(db, domain, user_id)
    route = crud_domain_route.update(db, db_obj=route, is_active=False, updated_by=user_id)
    invalidate_domain_cache(route.domain)
    logger.info("Domain route deactivated: %s", route.domain)
    return route


def lookup(db: Session, domain: str) -> Optional[DomainRoute]:
    """Active route that points at a portfolio, or None."""
    route = crud_domain_route.get_active(db, require_domain(domain))
    if route is None or route.portfolio_id is None:
        return None
    return route
