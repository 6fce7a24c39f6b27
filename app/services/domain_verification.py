"""
Domain verification and ownership operations.

Verification is pull-based: the user (or a scheduled check) asks the hosting
provider again and a pending record is promoted once the DNS is in place.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import DomainNotFound, DomainServiceError, DomainUnavailable, HostingError
from app.crud import crud_domain_record, crud_domain_route
from app.models.domain_record import DomainRecord, DomainStatus, DomainType, LIVE_STATUSES
from app.services import domain_routing
from app.services.domain_names import require_domain
from app.services.hosting_client import DnsRecord, HostingDomainClient

logger = logging.getLogger("pfdomains.domain")

# Support may attach a manual-intervention domain by hand; verify then promotes it
VERIFIABLE_STATUSES = LIVE_STATUSES + (DomainStatus.MANUAL_INTERVENTION_REQUIRED.value,)


@dataclass
class VerificationResult:
    activated: bool
    dns_record: Optional[DnsRecord] = None

    def as_response(self) -> dict:
        if self.activated:
            return {"activated": True}
        return {
            "activated": False,
            "dnsRecord": self.dns_record.as_dict() if self.dns_record else None,
        }


def verify(db: Session, hosting: HostingDomainClient, user_id: UUID, domain: str) -> VerificationResult:
    """Re-check a domain with the hosting provider; safe to poll."""
    domain = require_domain(domain)
    record = crud_domain_record.get_for_user(db, user_id, domain)
    if record is None or record.status not in VERIFIABLE_STATUSES:
        raise DomainNotFound()

    status = hosting.verify(domain)
    if not status.verified:
        logger.debug("Domain %s still pending verification", domain, extra={"domain": domain})
        return VerificationResult(activated=False, dns_record=status.required_record())

    if record.status != DomainStatus.ACTIVE.value or not record.dns_configured:
        recovered = record.status == DomainStatus.MANUAL_INTERVENTION_REQUIRED.value
        record = crud_domain_record.update(
            db, db_obj=record, status=DomainStatus.ACTIVE.value, dns_configured=True,
        )
        if recovered:
            _route_recovered(db, record)
        logger.info("Domain %s verified and activated", domain, extra={"domain": domain, "user": str(user_id)})
    return VerificationResult(activated=True)


def _route_recovered(db: Session, record: DomainRecord) -> None:
    """Fulfillment skipped routing for this record; create it now."""
    try:
        domain_routing.ensure_mapping(db, record.domain, record.user_id, record.portfolio_id)
    except DomainServiceError as e:
        db.rollback()
        logger.warning(
            "Routing entry for recovered domain %s not created: %s", record.domain, e,
            extra={"domain": record.domain, "user": str(record.user_id)},
        )


def attach_own_domain(
    db: Session,
    hosting: HostingDomainClient,
    user_id: UUID,
    domain: str,
    portfolio_id: Optional[UUID] = None,
) -> DomainRecord:
    """Attach a domain the user already owns elsewhere; no registrar involvement."""
    domain = require_domain(domain)
    if crud_domain_record.get_live_for_domain(db, domain):
        raise DomainUnavailable("Domain is already connected on the platform")
    active_route = crud_domain_route.get_active(db, domain)
    if active_route is not None and active_route.owner_user_id != user_id:
        raise DomainUnavailable("Domain is already connected on the platform")

    status = hosting.attach(domain)
    record = crud_domain_record.append(
        db,
        user_id=user_id,
        domain=domain,
        portfolio_id=portfolio_id,
        type=DomainType.BRING_YOUR_OWN.value,
        status=DomainStatus.ACTIVE.value if status.verified else DomainStatus.PENDING_VERIFICATION.value,
        dns_configured=status.verified,
        auto_renew=False,
    )
    domain_routing.ensure_mapping(db, domain, user_id, portfolio_id)
    logger.info("Bring-your-own domain %s attached (verified=%s)", domain, status.verified,
                extra={"domain": domain, "user": str(user_id)})
    return record


def cancel_domain(db: Session, hosting: HostingDomainClient, user_id: UUID, domain: str) -> DomainRecord:
    """Detach from hosting, soft-delete the route and mark the record canceled."""
    domain = require_domain(domain)
    record = crud_domain_record.get_for_user(db, user_id, domain)
    if record is None or record.status not in LIVE_STATUSES:
        raise DomainNotFound()

    try:
        hosting.remove(domain)
    except HostingError as e:
        logger.warning("Hosting removal failed for %s: %s", domain, e, extra={"domain": domain})
        raise

    route = crud_domain_route.get_active(db, domain)
    if route is not None and route.owner_user_id == user_id:
        domain_routing.deactivate_mapping(db, domain, user_id)

    record = crud_domain_record.update(db, db_obj=record, status=DomainStatus.CANCELED.value)
    logger.info("Domain %s canceled by user %s", domain, user_id, extra={"domain": domain})
    return record
