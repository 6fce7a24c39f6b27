"""
Fulfillment Saga

Runs once per completed payment: register → attach to hosting → persist the
DomainRecord → create the routing entry → redeem the voucher.

The saga is an explicit state machine persisted in ``fulfillment_runs``:

    quoted → registering → registered → attaching → active | pending_verification
                      ↘ failed_registration        ↘ manual_intervention

A run is claimed by inserting its row (unique on payment_intent_id) before any
external call, so duplicate webhook deliveries short-circuit even across
worker processes. Stage failures are recorded, never raised to the caller.
"""
import logging
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator, List, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import DomainNotFound, DuplicateFulfillment, InvalidSagaTransition
from app.crud import crud_domain_record, crud_fulfillment_run
from app.middleware.metrics import record_fulfillment
from app.models.domain_record import DomainRecord, DomainStatus, DomainType
from app.models.fulfillment_run import SAGA_TRANSITIONS, FulfillmentRun, SagaState
from app.services import domain_routing, vouchers
from app.services.domain_names import require_domain
from app.services.hosting_client import HostingDomainClient
from app.services.registrar_client import RegistrarClient

logger = logging.getLogger("pfdomains.fulfillment")

REGISTRATION_TERM = timedelta(days=365)

# Per-payment-intent locks for concurrent deliveries inside one process.
# Entry is [lock, holders]; dropped when the last holder leaves.
_intent_locks: Dict[str, List] = {}
_intent_locks_guard = threading.Lock()


@contextmanager
def _intent_lock(payment_intent_id: str) -> Iterator[None]:
    with _intent_locks_guard:
        entry = _intent_locks.get(payment_intent_id)
        if entry is None:
            entry = _intent_locks[payment_intent_id] = [threading.Lock(), 0]
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _intent_locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                _intent_locks.pop(payment_intent_id, None)


def _as_uuid(value: Union[str, UUID, None]) -> Optional[UUID]:
    if value is None or value == "":
        return None
    return value if isinstance(value, UUID) else UUID(str(value))


class FulfillmentSaga:
    def __init__(self, db: Session, registrar: RegistrarClient, hosting: HostingDomainClient):
        self.db = db
        self.registrar = registrar
        self.hosting = hosting

    # ── State machine ──

    def _log_extra(self, run: FulfillmentRun, **extra) -> dict:
        return {
            "domain": run.domain,
            "user": str(run.user_id),
            "payment_intent_id": run.payment_intent_id,
            "stage": run.state,
            **extra,
        }

    def _advance(self, run: FulfillmentRun, target: SagaState, **fields) -> FulfillmentRun:
        current = SagaState(run.state)
        if target not in SAGA_TRANSITIONS[current]:
            raise InvalidSagaTransition(f"{current.value} → {target.value}")
        run = crud_fulfillment_run.update(self.db, db_obj=run, state=target.value, **fields)
        logger.info(
            "Fulfillment %s: %s → %s", run.payment_intent_id, current.value, target.value,
            extra=self._log_extra(run),
        )
        return run

    def _append_record(self, run: FulfillmentRun, status: DomainStatus, **fields) -> DomainRecord:
        return crud_domain_record.append(
            self.db,
            user_id=run.user_id,
            domain=run.domain,
            portfolio_id=run.portfolio_id,
            type=DomainType.PLATFORM.value,
            status=status.value,
            payment_intent_id=run.payment_intent_id,
            saga_state=run.state,
            **fields,
        )

    # ── Entry point ──

    def handle_fulfillment(
        self,
        domain: str,
        user_id: Union[str, UUID],
        payment_intent_id: str,
        voucher_id: Optional[str] = None,
        portfolio_id: Union[str, UUID, None] = None,
    ) -> Optional[DomainRecord]:
        """
        Deliver a paid domain. Returns the DomainRecord for this payment
        (pre-existing on duplicate delivery), or None when a concurrent run
        in another process already holds the claim.
        """
        with _intent_lock(payment_intent_id):
            existing = crud_domain_record.get_by_payment_intent(self.db, payment_intent_id)
            if existing is not None:
                logger.info(
                    "Duplicate fulfillment for %s ignored", payment_intent_id,
                    extra={"domain": existing.domain, "payment_intent_id": payment_intent_id},
                )
                record_fulfillment("duplicate")
                return existing

            try:
                run = crud_fulfillment_run.claim(
                    self.db,
                    payment_intent_id=payment_intent_id,
                    user_id=_as_uuid(user_id),
                    domain=require_domain(domain),
                    portfolio_id=_as_uuid(portfolio_id),
                    voucher_id=voucher_id or None,
                )
            except DuplicateFulfillment:
                logger.info("Fulfillment for %s already claimed", payment_intent_id,
                            extra={"payment_intent_id": payment_intent_id})
                record_fulfillment("duplicate")
                return crud_domain_record.get_by_payment_intent(self.db, payment_intent_id)

            return self._run(run)

    def _run(self, run: FulfillmentRun) -> DomainRecord:
        started = time.perf_counter()

        record = self._register(run)
        if record is None:
            record = self._attach(run)

        if record.status in (DomainStatus.ACTIVE.value, DomainStatus.PENDING_VERIFICATION.value):
            self.create_route(run)

        # A failed registration leaves the voucher active
        if run.voucher_id and record.status != DomainStatus.FAILED_REGISTRATION.value:
            vouchers.redeem_voucher(self.db, _as_uuid(run.voucher_id))

        record_fulfillment(record.status)
        logger.info(
            "Fulfillment %s finished: %s", run.payment_intent_id, record.status,
            extra=self._log_extra(run, duration_ms=round((time.perf_counter() - started) * 1000, 2)),
        )
        return record

    # ── Stages ──

    def _register(self, run: FulfillmentRun) -> Optional[DomainRecord]:
        """Stage 2. Returns the failure record, or None when the domain was registered."""
        run = self._advance(run, SagaState.REGISTERING)
        try:
            self.registrar.register(run.domain)
        except Exception as e:
            logger.error(
                "Registration failed after payment for %s: %s", run.domain, e,
                exc_info=True, extra=self._log_extra(run),
            )
            run = self._advance(run, SagaState.FAILED_REGISTRATION, last_error=str(e))
            return self._append_record(
                run,
                DomainStatus.FAILED_REGISTRATION,
                failure_reason=str(e),
            )
        self._advance(run, SagaState.REGISTERED)
        return None

    def _attach(self, run: FulfillmentRun) -> DomainRecord:
        """Stages 3 and 4: hosting attachment, then the success or manual-intervention record."""
        run = self._advance(run, SagaState.ATTACHING)
        registered_at = datetime.now(timezone.utc)
        try:
            status = self.hosting.attach(run.domain)
        except Exception as e:
            # Domain is registered and paid for; support must attach it by hand
            logger.error(
                "Hosting attach failed for registered domain %s: %s", run.domain, e,
                exc_info=True, extra=self._log_extra(run),
            )
            run = self._advance(run, SagaState.MANUAL_INTERVENTION, last_error=str(e))
            return self._append_record(
                run,
                DomainStatus.MANUAL_INTERVENTION_REQUIRED,
                failure_reason=str(e),
                registered_at=registered_at,
                expires_at=registered_at + REGISTRATION_TERM,
            )

        target = SagaState.ACTIVE if status.verified else SagaState.PENDING_VERIFICATION
        run = self._advance(run, target)
        return self._append_record(
            run,
            DomainStatus.ACTIVE if status.verified else DomainStatus.PENDING_VERIFICATION,
            dns_configured=status.verified,
            registered_at=registered_at,
            expires_at=registered_at + REGISTRATION_TERM,
            auto_renew=True,
        )

    def create_route(self, run: FulfillmentRun) -> bool:
        """Stage 5. A failure is recorded on the run; earlier stages stay committed."""
        try:
            domain_routing.ensure_mapping(self.db, run.domain, run.user_id, run.portfolio_id)
        except Exception as e:
            self.db.rollback()
            logger.error(
                "Routing entry for %s not created: %s", run.domain, e,
                exc_info=True, extra=self._log_extra(run, stage="routing"),
            )
            crud_fulfillment_run.update(self.db, db_obj=run, routed=False, route_error=str(e))
            return False
        crud_fulfillment_run.update(self.db, db_obj=run, routed=True, route_error=None)
        return True

    def rerun_routing(self, payment_intent_id: str) -> FulfillmentRun:
        """Re-run stage 5 alone for a run that reached a success state."""
        run = crud_fulfillment_run.get_by_payment_intent(self.db, payment_intent_id)
        if run is None:
            raise DomainNotFound(f"No fulfillment run for {payment_intent_id}")
        if run.state not in (SagaState.ACTIVE.value, SagaState.PENDING_VERIFICATION.value):
            raise InvalidSagaTransition(f"Run is in state {run.state}; routing requires a registered, attached domain")
        self.create_route(run)
        return run
