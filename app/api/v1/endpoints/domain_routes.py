"""
Domain Routing API

Owners map their domains to one of their portfolios. The lookup endpoint is
public: the portfolio frontend resolves which portfolio to render for a host.
"""
from typing import Any, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api import deps
from app.core.exceptions import DomainNotFound
from app.crud import crud_domain_route
from app.models.user import User
from app.schemas.domain_route import DomainLookup, DomainRoute, DomainRouteCreate, DomainRouteUpdate
from app.services import domain_routing

router = APIRouter()


@router.get("/lookup/{domain}")
def lookup_domain(domain: str, db: Session = Depends(deps.get_db)) -> Any:
    route = domain_routing.lookup(db, domain)
    if route is None:
        raise DomainNotFound()
    return DomainLookup(
        portfolio_id=route.portfolio_id,
        portfolio_type=route.portfolio_type or "general",
    ).model_dump(by_alias=True, mode="json")


@router.get("/", response_model=List[DomainRoute])
def list_my_routes(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_active_user),
) -> Any:
    return crud_domain_route.list_for_owner(db, current_user.id)


@router.post("/", response_model=DomainRoute, status_code=201)
def create_route(
    body: DomainRouteCreate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_active_user),
) -> Any:
    return domain_routing.create_mapping(
        db, body.domain, current_user.id, body.portfolio_id, notes=body.notes,
    )


@router.patch("/{domain}", response_model=DomainRoute)
def repoint_route(
    domain: str,
    body: DomainRouteUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_active_user),
) -> Any:
    return domain_routing.repoint_mapping(db, domain, current_user.id, body.portfolio_id)


@router.delete("/{domain}", response_model=DomainRoute)
def delete_route(
    domain: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_active_user),
) -> Any:
    """Soft delete: the row stays, inactive, and can be re-created later."""
    return domain_routing.deactivate_mapping(db, domain, current_user.id)
