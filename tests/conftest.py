"""Pytest configuration and fixtures: in-memory database, fake external systems, API client."""
import os

# Settings are read at import time; point them at test doubles first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REGISTRAR_MODE", "mock")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("STRIPE_SECRET_KEY_TEST", "sk_test_dummy")
os.environ.setdefault("INTERNAL_API_KEY", "internal-test-key")

import uuid
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
from httpx import AsyncClient, ASGITransport
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import settings
from app.core.exceptions import HostingAttachFailed, RegistrationFailed
from app.db.base_class import Base
from app.services.hosting_client import DnsRecord, HostingDomainStatus
from app.services.registrar_client import AvailabilityResult, RegistrarClient, RegistrationResult, TldPrice

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
INTERNAL_KEY = os.environ["INTERNAL_API_KEY"]


# --- Fakes for external systems ---

class FakeRegistrar(RegistrarClient):
    """Registrar double: every domain available at standard price unless configured otherwise."""

    def __init__(self, prices: Optional[Dict[str, TldPrice]] = None):
        self.prices = prices if prices is not None else {
            "com": TldPrice(Decimal("10.28"), Decimal("0.18")),
            "io": TldPrice(Decimal("34.98"), Decimal("0.18")),
            "co.uk": TldPrice(Decimal("8.00"), Decimal("0")),
        }
        self.taken: set = set()
        self.premium: Dict[str, Decimal] = {}
        self.register_error: Optional[Exception] = None
        self.checked: List[str] = []
        self.registered: List[str] = []
        self.price_list_calls = 0

    def check_availability(self, domain: str) -> AvailabilityResult:
        self.checked.append(domain)
        if domain in self.premium:
            return AvailabilityResult(
                domain=domain, available=True, is_premium=True,
                premium_price=self.premium[domain], registrar_fee=Decimal("0.18"),
            )
        return AvailabilityResult(
            domain=domain, available=domain not in self.taken, registrar_fee=Decimal("0.18"),
        )

    def get_price_list(self) -> Dict[str, TldPrice]:
        self.price_list_calls += 1
        return dict(self.prices)

    def register(self, domain: str) -> RegistrationResult:
        self.registered.append(domain)
        if self.register_error is not None:
            raise self.register_error
        return RegistrationResult(domain=domain, registered=True)


class FakeHosting:
    """Hosting double recording attach / verify / remove calls."""

    def __init__(self, verified_on_attach: bool = False):
        self.verified_on_attach = verified_on_attach
        self.verified_on_verify = False
        self.attach_error: Optional[Exception] = None
        self.attached: List[str] = []
        self.verified: List[str] = []
        self.removed: List[str] = []

    def _status(self, domain: str, verified: bool) -> HostingDomainStatus:
        records = [] if verified else [DnsRecord(type="A", name="@", value="76.76.21.21")]
        return HostingDomainStatus(domain=domain, verified=verified, verification_instructions=records)

    def attach(self, domain: str) -> HostingDomainStatus:
        self.attached.append(domain)
        if self.attach_error is not None:
            raise self.attach_error
        return self._status(domain, self.verified_on_attach)

    def verify(self, domain: str) -> HostingDomainStatus:
        self.verified.append(domain)
        return self._status(domain, self.verified_on_verify)

    def remove(self, domain: str) -> None:
        self.removed.append(domain)


# --- Database ---

@pytest.fixture
def test_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    # Import all models so Base.metadata knows every table
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def _clear_domain_cache():
    from app.middleware.custom_domain import invalidate_domain_cache

    invalidate_domain_cache()
    yield
    invalidate_domain_cache()


# --- Factories ---

@pytest.fixture
def make_user(db):
    from app.models.user import User

    def _make(email: Optional[str] = None, is_superuser: bool = False, status: str = "active"):
        user = User(
            id=uuid.uuid4(),
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            full_name="Test User",
            is_superuser=is_superuser,
            status=status,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_portfolio(db):
    from app.models.portfolio import Portfolio

    def _make(user, portfolio_type: str = "handyman", name: str = "My Portfolio"):
        portfolio = Portfolio(id=uuid.uuid4(), user_id=user.id, name=name, portfolio_type=portfolio_type)
        db.add(portfolio)
        db.commit()
        db.refresh(portfolio)
        return portfolio

    return _make


@pytest.fixture
def make_voucher(db):
    from app.models.voucher import UserVoucher, Voucher, VoucherType

    def _make(user, discount_amount=None, discount_percentage=None,
              voucher_type=VoucherType.DISCOUNT.value, expires_at=None, auto_grant_on=None):
        voucher = Voucher(
            id=uuid.uuid4(),
            name=f"voucher-{uuid.uuid4().hex[:6]}",
            type=voucher_type,
            discount_amount=discount_amount,
            discount_percentage=discount_percentage,
            expires_at=expires_at,
            auto_grant_on=auto_grant_on,
        )
        db.add(voucher)
        db.commit()
        if user is None:
            db.refresh(voucher)
            return voucher
        grant = UserVoucher(id=uuid.uuid4(), user_id=user.id, voucher_id=voucher.id)
        db.add(grant)
        db.commit()
        db.refresh(grant)
        return grant

    return _make


def auth_headers(user) -> dict:
    token = jwt.encode({"sub": str(user.id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


# --- External collaborators ---

@pytest.fixture
def registrar():
    return FakeRegistrar()


@pytest.fixture
def hosting():
    return FakeHosting()


@pytest.fixture
def pricing_engine(registrar):
    from app.services.pricing import PriceListCache, PricingEngine

    return PricingEngine(registrar, PriceListCache(ttl_seconds=86400))


@pytest.fixture
def payment_provider():
    from app.services.payment_provider import PaymentProvider

    return PaymentProvider(api_key="sk_test_dummy", webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def registration_error():
    return RegistrationFailed("Namecheap API Error for namecheap.domains.create: Domain is taken")


@pytest.fixture
def attach_error():
    return HostingAttachFailed("Vercel API error: 409 Domain already in use")


# --- HTTP client ---

@pytest.fixture
async def client(session_factory, registrar, hosting, pricing_engine, payment_provider):
    """
    Async HTTP client over the ASGI app with DB and external systems overridden.
    Uses a localhost base URL so the custom-domain middleware stays out of the way.
    """
    from app.main import app as fastapi_app
    from app.api import deps

    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[deps.get_db] = _override_get_db
    fastapi_app.dependency_overrides[deps.get_registrar_client] = lambda: registrar
    fastapi_app.dependency_overrides[deps.get_hosting_client] = lambda: hosting
    fastapi_app.dependency_overrides[deps.get_pricing_engine] = lambda: pricing_engine
    fastapi_app.dependency_overrides[deps.get_payment_provider] = lambda: payment_provider

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://localhost") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()
