"""Fulfillment saga: stage outcomes, idempotency, routing isolation, voucher redemption."""
import threading
import time
from decimal import Decimal
from uuid import uuid4

import pytest

from app.core.exceptions import DomainRouteConflict, InvalidSagaTransition
from app.crud import crud_domain_route, crud_fulfillment_run
from app.models.domain_record import DomainRecord, DomainStatus
from app.models.domain_route import DomainRoute
from app.models.fulfillment_run import SagaState
from app.models.voucher import UserVoucherStatus
from app.services import fulfillment
from app.services.fulfillment import FulfillmentSaga

from conftest import FakeRegistrar


@pytest.fixture
def saga(db, registrar, hosting):
    return FulfillmentSaga(db, registrar, hosting)


def _records(db, payment_intent_id):
    return db.query(DomainRecord).filter(DomainRecord.payment_intent_id == payment_intent_id).all()


def test_success_pending_verification_creates_record_and_route(db, saga, registrar, hosting,
                                                              make_user, make_portfolio):
    user = make_user()
    portfolio = make_portfolio(user)

    record = saga.handle_fulfillment("example.com", str(user.id), "pi_1", portfolio_id=str(portfolio.id))

    assert record.status == DomainStatus.PENDING_VERIFICATION.value
    assert record.dns_configured is False
    assert record.auto_renew is True
    assert record.expires_at is not None
    assert record.saga_state == SagaState.PENDING_VERIFICATION.value
    assert registrar.registered == ["example.com"]
    assert hosting.attached == ["example.com"]

    route = crud_domain_route.get_active(db, "example.com")
    assert route.portfolio_id == portfolio.id
    assert route.portfolio_type == "handyman"
    assert crud_fulfillment_run.get_by_payment_intent(db, "pi_1").routed is True


def test_verified_attach_is_active(db, saga, hosting, make_user):
    hosting.verified_on_attach = True
    user = make_user()

    record = saga.handle_fulfillment("example.com", user.id, "pi_2")

    assert record.status == DomainStatus.ACTIVE.value
    assert record.dns_configured is True


def test_registration_failure_is_terminal(db, saga, registrar, hosting, make_user, registration_error):
    registrar.register_error = registration_error
    user = make_user()

    record = saga.handle_fulfillment("example.com", user.id, "pi_3")

    assert record.status == DomainStatus.FAILED_REGISTRATION.value
    assert "Domain is taken" in record.failure_reason
    assert record.registered_at is None
    assert hosting.attached == []
    assert crud_domain_route.get_by_domain(db, "example.com") is None
    assert crud_fulfillment_run.get_by_payment_intent(db, "pi_3").state == SagaState.FAILED_REGISTRATION.value


def test_registration_failure_keeps_voucher(db, saga, registrar, make_user, make_voucher, registration_error):
    registrar.register_error = registration_error
    user = make_user()
    grant = make_voucher(user, discount_amount=Decimal("5.00"))

    saga.handle_fulfillment("example.com", user.id, "pi_3b", voucher_id=str(grant.id))
    db.refresh(grant)

    assert grant.status == UserVoucherStatus.ACTIVE.value
    assert grant.redeemed_at is None


def test_hosting_failure_needs_manual_intervention(db, saga, hosting, make_user, attach_error):
    hosting.attach_error = attach_error
    user = make_user()

    record = saga.handle_fulfillment("example.com", user.id, "pi_4")

    assert record.status == DomainStatus.MANUAL_INTERVENTION_REQUIRED.value
    assert "already in use" in record.failure_reason
    assert db.query(DomainRoute).count() == 0
    run = crud_fulfillment_run.get_by_payment_intent(db, "pi_4")
    assert run.state == SagaState.MANUAL_INTERVENTION.value
    assert run.last_error


def test_unexpected_hosting_exception_is_recorded_too(db, saga, hosting, make_user):
    hosting.attach_error = RuntimeError("socket closed")
    user = make_user()

    record = saga.handle_fulfillment("example.com", user.id, "pi_5")
    assert record.status == DomainStatus.MANUAL_INTERVENTION_REQUIRED.value


def test_second_delivery_has_no_side_effects(db, saga, registrar, hosting, make_user):
    user = make_user()

    first = saga.handle_fulfillment("example.com", user.id, "pi_6")
    second = saga.handle_fulfillment("example.com", user.id, "pi_6")

    assert first.id == second.id
    assert len(_records(db, "pi_6")) == 1
    assert registrar.registered == ["example.com"]
    assert hosting.attached == ["example.com"]


def test_claimed_run_without_record_short_circuits(db, saga, registrar, make_user):
    """Another worker holds the claim and has not written its record yet."""
    user = make_user()
    crud_fulfillment_run.claim(db, payment_intent_id="pi_7", user_id=user.id, domain="example.com")

    assert saga.handle_fulfillment("example.com", user.id, "pi_7") is None
    assert registrar.registered == []


def test_routing_failure_keeps_registration(db, saga, make_user):
    owner, buyer = make_user(), make_user()
    crud_domain_route.create(
        db, domain="example.com", owner_user_id=owner.id, portfolio_id=None, portfolio_type=None,
    )

    record = saga.handle_fulfillment("example.com", buyer.id, "pi_8")

    assert record.status == DomainStatus.PENDING_VERIFICATION.value
    run = crud_fulfillment_run.get_by_payment_intent(db, "pi_8")
    assert run.routed is False
    assert "already mapped" in run.route_error
    assert crud_domain_route.get_active(db, "example.com").owner_user_id == owner.id


def test_rerun_routing_after_conflict_cleared(db, saga, make_user):
    owner, buyer = make_user(), make_user()
    stale = crud_domain_route.create(
        db, domain="example.com", owner_user_id=owner.id, portfolio_id=None, portfolio_type=None,
    )
    saga.handle_fulfillment("example.com", buyer.id, "pi_9")

    crud_domain_route.update(db, db_obj=stale, is_active=False)
    run = saga.rerun_routing("pi_9")

    assert run.routed is True
    assert run.route_error is None
    assert crud_domain_route.get_active(db, "example.com").owner_user_id == buyer.id


def test_rerun_routing_refuses_failed_runs(saga, registrar, make_user, registration_error):
    registrar.register_error = registration_error
    user = make_user()
    saga.handle_fulfillment("example.com", user.id, "pi_10")

    with pytest.raises(InvalidSagaTransition):
        saga.rerun_routing("pi_10")


def test_voucher_redeemed_after_fulfillment(db, saga, make_user, make_voucher):
    user = make_user()
    grant = make_voucher(user, discount_amount=Decimal("5.00"))

    saga.handle_fulfillment("example.com", user.id, "pi_11", voucher_id=str(grant.id))
    db.refresh(grant)

    assert grant.status == UserVoucherStatus.REDEEMED.value


def test_illegal_transition_rejected(db, saga, make_user):
    user = make_user()
    run = crud_fulfillment_run.claim(db, payment_intent_id=f"pi_{uuid4().hex}", user_id=user.id,
                                     domain="example.com")
    with pytest.raises(InvalidSagaTransition):
        saga._advance(run, SagaState.ACTIVE)


def test_duplicate_route_claim_is_conflict(db, make_user):
    user = make_user()
    crud_domain_route.create(db, domain="dup.com", owner_user_id=user.id, portfolio_id=None, portfolio_type=None)
    with pytest.raises(DomainRouteConflict):
        crud_domain_route.create(db, domain="dup.com", owner_user_id=user.id, portfolio_id=None,
                                 portfolio_type=None)


def test_task_runs_saga_with_own_session(session_factory, registrar, hosting, make_user, monkeypatch):
    from app.tasks import fulfillment_tasks

    monkeypatch.setattr(fulfillment_tasks, "SessionLocal", session_factory)
    monkeypatch.setattr(fulfillment_tasks, "build_registrar_client", lambda: registrar)
    monkeypatch.setattr(fulfillment_tasks, "HostingDomainClient", lambda: hosting)
    user = make_user()

    first = fulfillment_tasks.fulfill_domain_task("example.com", str(user.id), "pi_12")
    again = fulfillment_tasks.fulfill_domain_task("example.com", str(user.id), "pi_12")

    assert first == {"status": DomainStatus.PENDING_VERIFICATION.value, "domain": "example.com",
                     "payment_intent_id": "pi_12"}
    assert again == first
    assert registrar.registered == ["example.com"]


def test_intent_locks_released_after_runs(saga, make_user):
    user = make_user()
    for n in range(20):
        saga.handle_fulfillment(f"shop{n}.com", user.id, f"pi_lock_{n}")
    saga.handle_fulfillment("shop0.com", user.id, "pi_lock_0")

    assert not any(key.startswith("pi_lock_") for key in fulfillment._intent_locks)


class GatedRegistrar(FakeRegistrar):
    """Holds every registration until the test releases it."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def register(self, domain):
        self.entered.set()
        self.release.wait(timeout=5)
        return super().register(domain)


def test_concurrent_deliveries_fulfill_once(session_factory, hosting, make_user):
    registrar = GatedRegistrar()
    user_id = make_user().id
    start = threading.Barrier(2)
    # Sessions share one SQLite connection; close them only after both threads finish
    sessions = [session_factory(), session_factory()]
    results, errors = [], []

    def deliver(session):
        try:
            start.wait(timeout=5)
            record = FulfillmentSaga(session, registrar, hosting).handle_fulfillment(
                "example.com", user_id, "pi_race",
            )
            results.append(record is not None)
        except Exception as e:
            errors.append(e)

    workers = [threading.Thread(target=deliver, args=(session,)) for session in sessions]
    for worker in workers:
        worker.start()
    assert registrar.entered.wait(timeout=5)
    time.sleep(0.05)
    registrar.release.set()
    for worker in workers:
        worker.join(timeout=10)
    for session in sessions:
        session.close()

    assert errors == []
    assert registrar.registered == ["example.com"]
    assert hosting.attached == ["example.com"]
    assert results == [True, True]
    check = session_factory()
    try:
        assert check.query(DomainRecord).filter(DomainRecord.payment_intent_id == "pi_race").count() == 1
    finally:
        check.close()
