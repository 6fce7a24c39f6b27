"""Domain ownership endpoints, support tooling and voucher endpoints."""
from decimal import Decimal

from app.crud import crud_domain_record, crud_domain_route
from app.models.domain_record import DomainStatus, DomainType
from app.models.voucher import VoucherTrigger
from app.services import domain_routing
from app.services.fulfillment import FulfillmentSaga

from conftest import INTERNAL_KEY, auth_headers

API = "/api/v1/domains"


async def test_list_only_my_domains(client, db, make_user):
    me, other = make_user(), make_user()
    crud_domain_record.append(db, user_id=me.id, domain="mine.com", type=DomainType.PLATFORM.value,
                              status=DomainStatus.ACTIVE.value, payment_intent_id="pi_a")
    crud_domain_record.append(db, user_id=other.id, domain="theirs.com", type=DomainType.PLATFORM.value,
                              status=DomainStatus.ACTIVE.value, payment_intent_id="pi_b")

    resp = await client.get(f"{API}/", headers=auth_headers(me))

    assert resp.status_code == 200
    assert [d["domain"] for d in resp.json()] == ["mine.com"]


async def test_bring_your_own_domain(client, db, hosting, registrar, make_user, make_portfolio):
    user = make_user()
    portfolio = make_portfolio(user)

    resp = await client.post(
        f"{API}/byo", json={"domain": "www.Mine.org", "portfolioId": str(portfolio.id)}, headers=auth_headers(user),
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["domain"] == "mine.org"
    assert body["type"] == DomainType.BRING_YOUR_OWN.value
    assert body["status"] == DomainStatus.PENDING_VERIFICATION.value
    assert hosting.attached == ["mine.org"]
    assert registrar.registered == []
    assert crud_domain_route.get_active(db, "mine.org").portfolio_id == portfolio.id


async def test_bring_your_own_domain_taken(client, db, make_user):
    owner, other = make_user(), make_user()
    crud_domain_record.append(db, user_id=owner.id, domain="mine.org", type=DomainType.PLATFORM.value,
                              status=DomainStatus.ACTIVE.value, payment_intent_id="pi_c")

    resp = await client.post(f"{API}/byo", json={"domain": "mine.org"}, headers=auth_headers(other))
    assert resp.status_code == 400


async def test_cancel_domain(client, db, hosting, make_user, make_portfolio):
    user = make_user()
    record = crud_domain_record.append(db, user_id=user.id, domain="bye.com", type=DomainType.PLATFORM.value,
                                       status=DomainStatus.ACTIVE.value, payment_intent_id="pi_d")
    domain_routing.create_mapping(db, "bye.com", user.id, make_portfolio(user).id)

    resp = await client.delete(f"{API}/bye.com", headers=auth_headers(user))

    assert resp.status_code == 200
    assert resp.json()["status"] == DomainStatus.CANCELED.value
    assert hosting.removed == ["bye.com"]
    assert crud_domain_route.get_active(db, "bye.com") is None
    db.refresh(record)
    assert record.status == DomainStatus.CANCELED.value


async def test_attention_list_is_superuser_only(client, db, make_user):
    user = make_user()
    admin = make_user(is_superuser=True)
    crud_domain_record.append(db, user_id=user.id, domain="broken.com", type=DomainType.PLATFORM.value,
                              status=DomainStatus.MANUAL_INTERVENTION_REQUIRED.value,
                              failure_reason="Vercel API error", payment_intent_id="pi_e")
    crud_domain_record.append(db, user_id=user.id, domain="fine.com", type=DomainType.PLATFORM.value,
                              status=DomainStatus.ACTIVE.value, payment_intent_id="pi_f")

    assert (await client.get(f"{API}/attention", headers=auth_headers(user))).status_code == 403

    resp = await client.get(f"{API}/attention", headers=auth_headers(admin))
    assert resp.status_code == 200
    rows = resp.json()
    assert [r["domain"] for r in rows] == ["broken.com"]
    assert rows[0]["failure_reason"] == "Vercel API error"


async def test_reroute_unknown_run_404(client, make_user):
    admin = make_user(is_superuser=True)
    resp = await client.post(f"{API}/runs/pi_missing/reroute", headers=auth_headers(admin))
    assert resp.status_code == 404


async def test_reroute_after_fulfillment(client, db, registrar, hosting, make_user):
    admin, buyer = make_user(is_superuser=True), make_user()
    FulfillmentSaga(db, registrar, hosting).handle_fulfillment("routed.com", buyer.id, "pi_g")

    resp = await client.post(f"{API}/runs/pi_g/reroute", headers=auth_headers(admin))

    assert resp.status_code == 200
    assert resp.json()["routed"] is True


# ── Vouchers ──

async def test_grant_requires_internal_key(client, make_user, make_voucher):
    user = make_user()
    make_voucher(None, discount_amount=Decimal("5.00"), auto_grant_on=VoucherTrigger.FIRST_SUBSCRIPTION.value)
    body = {"userId": str(user.id), "trigger": VoucherTrigger.FIRST_SUBSCRIPTION.value}

    denied = await client.post("/api/v1/vouchers/grant", json=body)
    assert denied.status_code == 403

    granted = await client.post("/api/v1/vouchers/grant", json=body, headers={"X-Internal-Key": INTERNAL_KEY})
    again = await client.post("/api/v1/vouchers/grant", json=body, headers={"X-Internal-Key": INTERNAL_KEY})
    assert granted.json()["granted"] is True
    assert again.json() == {"granted": False, "user_voucher_id": None}

    mine = await client.get("/api/v1/vouchers/my", headers=auth_headers(user))
    assert len(mine.json()) == 1
    assert mine.json()[0]["voucher"]["discount_amount"] == "5.00"
