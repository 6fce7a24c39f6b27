"""Pricing engine tiers, rounding and the registrar price-list cache."""
from decimal import Decimal

import pytest

from app.core.exceptions import InvalidDomain, PricingUnavailable, RegistrarError
from app.services.domain_names import normalize_domain, split_domain
from app.services.pricing import PriceListCache, PricingEngine
from app.services.registrar_client import TldPrice

from conftest import FakeRegistrar


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


# ── Domain names ──

@pytest.mark.parametrize("raw, expected", [
    ("Example.COM", "example.com"),
    ("https://www.example.com/path?x=1", "example.com"),
    ("example.com:8080", "example.com"),
    ("example.com.", "example.com"),
])
def test_normalize_domain(raw, expected):
    assert normalize_domain(raw) == expected


def test_split_domain_keeps_multi_label_tld():
    assert split_domain("shop.co.uk") == ("shop", "co.uk")


@pytest.mark.parametrize("bad", ["localhost", "", "-bad.com", "exa mple.com"])
def test_split_domain_rejects_invalid(bad):
    with pytest.raises(InvalidDomain):
        split_domain(bad)


# ── Tiers ──

def test_cheap_tld_pays_flat_price(pricing_engine):
    quote = pricing_engine.quote("example.com")

    assert quote.available is True
    assert quote.total_price == Decimal("12.99") + Decimal("0.18")
    assert quote.platform_fee == Decimal("12.99") - Decimal("10.28")
    assert quote.as_response()["totalPrice"] == "13.17"


def test_price_equal_to_flat_price_stays_on_flat_tier():
    registrar = FakeRegistrar(prices={"net": TldPrice(Decimal("12.99"), Decimal("0.18"))})
    quote = PricingEngine(registrar, PriceListCache()).quote("example.net")

    assert quote.platform_fee == Decimal("0")
    assert quote.total_price == Decimal("13.17")


def test_expensive_tld_adds_fixed_markup(pricing_engine):
    quote = pricing_engine.quote("startup.io")

    assert quote.platform_fee == Decimal("2.00")
    assert quote.total_price == Decimal("34.98") + Decimal("0.18") + Decimal("2.00")


def test_premium_is_pass_through(registrar, pricing_engine):
    registrar.premium["gold.com"] = Decimal("2500.00")
    quote = pricing_engine.quote("gold.com")

    assert quote.is_premium is True
    assert quote.platform_fee == Decimal("0")
    assert quote.total_price == Decimal("2500.18")
    assert registrar.price_list_calls == 0


def test_unavailable_domain_has_no_price_fields(registrar, pricing_engine):
    registrar.taken.add("taken.com")
    quote = pricing_engine.quote("taken.com")

    assert quote.as_response() == {"domain": "taken.com", "available": False}
    assert registrar.price_list_calls == 0


def test_invalid_domain_rejected_before_registrar_call(registrar, pricing_engine):
    with pytest.raises(InvalidDomain):
        pricing_engine.quote("nodot")
    assert registrar.checked == []


def test_multi_label_tld_priced_by_full_suffix(pricing_engine):
    quote = pricing_engine.quote("shop.co.uk")
    assert quote.total_price == Decimal("12.99")


def test_rounding_happens_only_on_total():
    registrar = FakeRegistrar(prices={"xyz": TldPrice(Decimal("10.004"), Decimal("0.004"))})
    engine = PricingEngine(registrar, PriceListCache(), flat_price=Decimal("10.00"), markup=Decimal("2.00"))

    # 10.004 + 0.004 + 2.00 = 12.008 → 12.01; rounding each part first would give 12.00
    assert engine.quote("example.xyz").total_price == Decimal("12.01")


def test_unknown_tld_is_pricing_unavailable(pricing_engine):
    with pytest.raises(PricingUnavailable, match="Pricing not found"):
        pricing_engine.quote("example.museum")


def test_price_list_failure_is_pricing_unavailable(registrar, pricing_engine):
    def boom():
        raise RegistrarError("relay down")

    registrar.get_price_list = boom
    with pytest.raises(PricingUnavailable):
        pricing_engine.quote("example.com")


# ── Cache ──

def test_price_list_cached_until_ttl_expires():
    clock = FakeClock()
    registrar = FakeRegistrar()
    engine = PricingEngine(registrar, PriceListCache(ttl_seconds=86400, clock=clock))

    engine.quote("a.com")
    engine.quote("b.com")
    assert registrar.price_list_calls == 1

    clock.now += 86401
    engine.quote("c.com")
    assert registrar.price_list_calls == 2


def test_stale_list_served_while_refresh_in_progress():
    clock = FakeClock()
    cache = PriceListCache(ttl_seconds=10, clock=clock)
    first = {"com": TldPrice(Decimal("1"), Decimal("0"))}
    cache.get(lambda: first)

    clock.now += 11
    cache._refresh_lock.acquire()
    try:
        calls = []
        assert cache.get(lambda: calls.append(1) or {}) is first
        assert calls == []
    finally:
        cache._refresh_lock.release()


def test_clear_forces_reload():
    cache = PriceListCache(ttl_seconds=100)
    loads = []

    def loader():
        loads.append(1)
        return {}

    cache.get(loader)
    cache.clear()
    cache.get(loader)
    assert len(loads) == 2
