"""
Domain ownership API: the caller's DomainRecords, bring-your-own attachment,
cancellation, and superuser support tooling for failed fulfillments.
"""
from typing import Any, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api import deps
from app.crud import crud_domain_record
from app.models.user import User
from app.schemas.domain import AttentionRecord, DomainRecordOut, FulfillmentRunOut, OwnDomainCreate
from app.services import domain_verification
from app.services.fulfillment import FulfillmentSaga
from app.services.hosting_client import HostingDomainClient
from app.services.registrar_client import RegistrarClient

router = APIRouter()


@router.get("/", response_model=List[DomainRecordOut])
def list_my_domains(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_active_user),
) -> Any:
    return crud_domain_record.list_for_user(db, current_user.id)


@router.post("/byo", response_model=DomainRecordOut, status_code=201)
def attach_own_domain(
    body: OwnDomainCreate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_active_user),
    hosting: HostingDomainClient = Depends(deps.get_hosting_client),
) -> Any:
    """Connect a domain registered elsewhere; the user configures DNS then polls verify."""
    return domain_verification.attach_own_domain(
        db, hosting, current_user.id, body.domain, body.portfolio_id,
    )


@router.get("/attention", response_model=List[AttentionRecord])
def list_needing_attention(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_active_superuser),
) -> Any:
    """Records in failed_registration / manual_intervention_required, newest first."""
    return crud_domain_record.list_needing_attention(db, skip=skip, limit=limit)


@router.post("/runs/{payment_intent_id}/reroute", response_model=FulfillmentRunOut)
def rerun_routing(
    payment_intent_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_active_superuser),
    registrar: RegistrarClient = Depends(deps.get_registrar_client),
    hosting: HostingDomainClient = Depends(deps.get_hosting_client),
) -> Any:
    return FulfillmentSaga(db, registrar, hosting).rerun_routing(payment_intent_id)


@router.delete("/{domain}", response_model=DomainRecordOut)
def cancel_domain(
    domain: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_active_user),
    hosting: HostingDomainClient = Depends(deps.get_hosting_client),
) -> Any:
    return domain_verification.cancel_domain(db, hosting, current_user.id, domain)
