"""
Pricing Engine

Sellable price = registrar wholesale price + platform fee:

  - premium names: registrar premium price + registrar fee, platform fee 0
  - one-year price <= flat retail price F: customer pays F (+ registrar fee),
    platform fee = F - registrar price
  - one-year price > F: registrar price + registrar fee + fixed markup

Amounts stay exact ``Decimal`` until the final total, which is the only value
rounded to cents.
"""
import logging
import threading
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Optional

from app.config import settings
from app.core.exceptions import PricingUnavailable, RegistrarError
from app.services.domain_names import split_domain
from app.services.registrar_client import RegistrarClient, TldPrice

logger = logging.getLogger("pfdomains.pricing")

CENTS = Decimal("0.01")


def to_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass
class PriceQuote:
    domain: str
    available: bool
    is_premium: bool = False
    base_price: Optional[Decimal] = None
    registrar_fee: Optional[Decimal] = None
    platform_fee: Optional[Decimal] = None
    total_price: Optional[Decimal] = None
    price_source: Optional[str] = None

    def as_response(self) -> dict:
        if not self.available:
            return {"domain": self.domain, "available": False}
        return {
            "domain": self.domain,
            "available": True,
            "isPremium": self.is_premium,
            "basePrice": f"{to_cents(self.base_price):.2f}",
            "registrarFee": f"{to_cents(self.registrar_fee):.2f}",
            "platformFee": f"{to_cents(self.platform_fee):.2f}",
            "totalPrice": f"{self.total_price:.2f}",
            "priceSource": self.price_source,
        }


class PriceListCache:
    """
    Registrar price list with a time-to-live.

    Readers never block on a refresh that is already running once a list has
    been loaded; they get the previous list until the new one is stored.
    """

    def __init__(self, ttl_seconds: int = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.PRICING_CACHE_TTL_SECONDS
        self._clock = clock
        self._entries: Optional[Dict[str, TldPrice]] = None
        self._loaded_at: Optional[float] = None
        self._refresh_lock = threading.Lock()

    def _is_fresh(self) -> bool:
        return (
            self._entries is not None
            and self._loaded_at is not None
            and self._clock() - self._loaded_at <= self.ttl_seconds
        )

    def get(self, loader: Callable[[], Dict[str, TldPrice]]) -> Dict[str, TldPrice]:
        if self._is_fresh():
            return self._entries

        stale = self._entries
        if stale is not None:
            if not self._refresh_lock.acquire(blocking=False):
                return stale
        else:
            self._refresh_lock.acquire()

        try:
            if self._is_fresh():
                return self._entries
            entries = loader()
            self._entries = entries
            self._loaded_at = self._clock()
            logger.info("Cached registrar pricing for %d TLDs", len(entries))
            return entries
        finally:
            self._refresh_lock.release()

    def clear(self) -> None:
        self._entries = None
        self._loaded_at = None


class PricingEngine:
    def __init__(
        self,
        registrar: RegistrarClient,
        cache: Optional[PriceListCache] = None,
        flat_price: Optional[Decimal] = None,
        markup: Optional[Decimal] = None,
    ):
        self.registrar = registrar
        self.cache = cache or PriceListCache()
        self.flat_price = Decimal(flat_price if flat_price is not None else settings.DOMAIN_FLAT_PRICE)
        self.markup = Decimal(markup if markup is not None else settings.DOMAIN_TLD_MARKUP)

    def tld_price(self, tld: str) -> TldPrice:
        try:
            price_list = self.cache.get(self.registrar.get_price_list)
        except RegistrarError as e:
            raise PricingUnavailable(str(e)) from e
        pricing = price_list.get(tld.lower())
        if pricing is None:
            raise PricingUnavailable(f"Pricing not found for TLD: .{tld}")
        return pricing

    def quote(self, domain: str) -> PriceQuote:
        label, tld = split_domain(domain)
        domain = f"{label}.{tld}"

        availability = self.registrar.check_availability(domain)
        if not availability.available:
            return PriceQuote(domain=domain, available=False)

        if availability.is_premium:
            price = availability.premium_price or Decimal("0")
            fee = availability.registrar_fee
            return PriceQuote(
                domain=domain,
                available=True,
                is_premium=True,
                base_price=price,
                registrar_fee=fee,
                platform_fee=Decimal("0"),
                total_price=to_cents(price + fee),
                price_source="Premium Domain",
            )

        pricing = self.tld_price(tld)
        logger.debug(
            "TLD: %s, registrar price: %s, registrar fee: %s",
            tld, pricing.price, pricing.registrar_fee,
        )

        if pricing.price <= self.flat_price:
            platform_fee = self.flat_price - pricing.price
            total = self.flat_price + pricing.registrar_fee
            source = "Platform Flat Rate"
        else:
            platform_fee = self.markup
            total = pricing.price + pricing.registrar_fee + self.markup
            source = "Registrar + Markup"

        return PriceQuote(
            domain=domain,
            available=True,
            is_premium=False,
            base_price=pricing.price,
            registrar_fee=pricing.registrar_fee,
            platform_fee=platform_fee,
            total_price=to_cents(total),
            price_source=source,
        )
