"""
Registrar Client (Namecheap)

Three transports share one normalization layer:
  - proxy:  JSON relay of the Namecheap API (internal key header)
  - direct: the Namecheap XML API itself, parsed into the same dict shape
  - mock:   simulated responses for local development

Namecheap payloads have a dynamic shape: any element may be a single object
or a list depending on how many siblings it has. Everything below
``parse_*`` sees only the fixed dataclasses; nothing else branches on shape.
"""
import logging
import time
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import settings
from app.core.exceptions import RegistrarError, RegistrationFailed

logger = logging.getLogger("pfdomains.registrar")


@dataclass
class AvailabilityResult:
    domain: str
    available: bool
    is_premium: bool = False
    premium_price: Optional[Decimal] = None
    registrar_fee: Decimal = Decimal("0")


@dataclass
class TldPrice:
    price: Decimal
    registrar_fee: Decimal


@dataclass
class RegistrationResult:
    domain: str
    registered: bool
    charged_amount: Optional[Decimal] = None


# ═══════════════════════════════════════════
#  Normalization
# ═══════════════════════════════════════════

def as_list(value: Any) -> List[Any]:
    """Single object → [object], list → list, missing → []."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _first(value: Any) -> Dict[str, Any]:
    """First element of a maybe-list child, or {} when it is missing or not an object."""
    items = as_list(value)
    return items[0] if items and isinstance(items[0], dict) else {}


def _child(node: Any, key: str) -> Any:
    return node.get(key) if isinstance(node, dict) else None


def _attrs(node: Any) -> Dict[str, str]:
    if isinstance(node, dict):
        return node.get("$") or {}
    return {}


def _decimal(value: Any, default: str = "0") -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal(default)
    except InvalidOperation:
        return Decimal(default)


def _is_true(value: Any) -> bool:
    return str(value).lower() == "true"


def xml_to_dict(xml_text: str) -> Dict[str, Any]:
    """
    Parse registrar XML into the relay's JSON shape: attributes under ``$``,
    text under ``_``, repeated children as lists, single children as objects.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise RegistrarError(f"Failed to parse registrar XML: {e}") from e
    return {_local_name(root.tag): _element_to_node(root)}


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _element_to_node(element: ET.Element) -> Any:
    node: Dict[str, Any] = {}
    if element.attrib:
        node["$"] = dict(element.attrib)
    for child in element:
        key = _local_name(child.tag)
        value = _element_to_node(child)
        if key in node:
            existing = node[key]
            if not isinstance(existing, list):
                node[key] = [existing]
            node[key].append(value)
        else:
            node[key] = value
    text = (element.text or "").strip()
    if text:
        if not node:
            return text
        node["_"] = text
    return node


def extract_error_message(api_response: Dict[str, Any]) -> str:
    entries = as_list(_child(_first(api_response.get("Errors")), "Error"))
    if not entries:
        return "Unknown Namecheap API Error"
    first = entries[0]
    if isinstance(first, str):
        return first
    if first.get("_"):
        return first["_"]
    if first.get("Message"):
        return first["Message"]
    code = _attrs(first).get("Number") or _attrs(first).get("Code")
    if code:
        return f"Error Code: {code}"
    return "Unparsable Namecheap Error"


def unwrap_api_response(payload: Dict[str, Any], command: str) -> Dict[str, Any]:
    """Return the ApiResponse body, raising RegistrarError on Status=ERROR."""
    if not isinstance(payload, dict):
        raise RegistrarError(f"Invalid registrar response for {command}")
    api = _first(payload.get("ApiResponse", payload))
    if _attrs(api).get("Status", "").upper() == "ERROR":
        message = extract_error_message(api)
        raise RegistrarError(f"Namecheap API Error for {command}: {message}")
    return api


def parse_check_result(api: Dict[str, Any], domain: str) -> AvailabilityResult:
    results = as_list(_child(_first(api.get("CommandResponse")), "DomainCheckResult"))
    if not results:
        raise RegistrarError("Invalid Namecheap Check response: Missing DomainCheckResult.")

    data = _attrs(results[0])
    for entry in results:
        if _attrs(entry).get("Domain", "").lower() == domain:
            data = _attrs(entry)
            break

    available = _is_true(data.get("Available"))
    is_premium = _is_true(data.get("IsPremiumName"))
    return AvailabilityResult(
        domain=domain,
        available=available,
        is_premium=is_premium,
        premium_price=_decimal(data.get("PremiumRegistrationPrice")) if is_premium else None,
        registrar_fee=_decimal(data.get("IcannFee")),
    )


def parse_price_list(api: Dict[str, Any]) -> Dict[str, TldPrice]:
    result = _first(_child(_first(api.get("CommandResponse")), "UserGetPricingResult"))
    product_types = as_list(result.get("ProductType"))

    categories: List[Any] = []
    for product_type in product_types:
        categories.extend(as_list(product_type.get("ProductCategory")))
    if not categories:
        raise RegistrarError("ProductCategory missing from Namecheap pricing response")

    register = next(
        (c for c in categories if _attrs(c).get("Name", "").upper() == "REGISTER"),
        None,
    )
    if register is None:
        raise RegistrarError("REGISTER pricing not found")

    products = as_list(register.get("Product"))
    if not products:
        raise RegistrarError("No products found in REGISTER category")

    price_list: Dict[str, TldPrice] = {}
    for product in products:
        tld = _attrs(product).get("Name", "").lower()
        if not tld:
            continue
        one_year = next(
            (p for p in as_list(product.get("Price")) if _attrs(p).get("Duration") == "1"),
            None,
        )
        if one_year is None:
            continue
        attrs = _attrs(one_year)
        price_list[tld] = TldPrice(
            price=_decimal(attrs.get("Price")),
            registrar_fee=_decimal(attrs.get("AdditionalCost")),
        )
    return price_list


def parse_create_result(api: Dict[str, Any], domain: str) -> RegistrationResult:
    results = as_list(_child(_first(api.get("CommandResponse")), "DomainCreateResult"))
    if not results:
        raise RegistrationFailed("Invalid Namecheap create response: Missing DomainCreateResult.")
    data = _attrs(results[0])
    if not _is_true(data.get("Registered")):
        raise RegistrationFailed(f"Registrar did not register {domain}")
    charged = data.get("ChargedAmount")
    return RegistrationResult(
        domain=data.get("Domain", domain).lower(),
        registered=True,
        charged_amount=_decimal(charged) if charged is not None else None,
    )


# ═══════════════════════════════════════════
#  Clients
# ═══════════════════════════════════════════

_read_retry = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    reraise=True,
)


class RegistrarClient(ABC):
    """Availability, price list and registration against the registrar."""

    @abstractmethod
    def check_availability(self, domain: str) -> AvailabilityResult:
        ...

    @abstractmethod
    def get_price_list(self) -> Dict[str, TldPrice]:
        ...

    @abstractmethod
    def register(self, domain: str) -> RegistrationResult:
        ...


class NamecheapProxyClient(RegistrarClient):
    """Talks to the internal Namecheap relay, which answers with JSON."""

    def __init__(self, base_url: str = None, api_key: str = None,
                 timeout: float = None, transport: httpx.BaseTransport = None):
        self.client = httpx.Client(
            base_url=base_url or settings.NAMECHEAP_PROXY_URL,
            headers={"x-internal-key": api_key if api_key is not None else settings.NAMECHEAP_PROXY_KEY},
            timeout=timeout or settings.REGISTRAR_TIMEOUT,
            transport=transport,
        )

    def _post(self, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        response = self.client.post(path, json=payload or {})
        response.raise_for_status()
        return response.json()

    @_read_retry
    def _post_idempotent(self, path: str, payload: Optional[dict] = None) -> Dict[str, Any]:
        return self._post(path, payload)

    def check_availability(self, domain: str) -> AvailabilityResult:
        try:
            payload = self._post_idempotent("namecheap/check", {"domain": domain})
        except httpx.HTTPError as e:
            raise RegistrarError(f"Availability check failed for {domain}: {e}") from e
        return parse_check_result(unwrap_api_response(payload, "namecheap.domains.check"), domain)

    def get_price_list(self) -> Dict[str, TldPrice]:
        try:
            payload = self._post_idempotent("namecheap/pricing")
        except httpx.HTTPError as e:
            raise RegistrarError(f"Price list request failed: {e}") from e
        return parse_price_list(unwrap_api_response(payload, "namecheap.users.getPricing"))

    def register(self, domain: str) -> RegistrationResult:
        # Never retried: a timed-out create may still have gone through.
        try:
            payload = self._post("namecheap/register", {"domain": domain})
        except httpx.HTTPError as e:
            raise RegistrationFailed(f"Registration request failed for {domain}: {e}") from e
        try:
            api = unwrap_api_response(payload, "namecheap.domains.create")
        except RegistrarError as e:
            raise RegistrationFailed(e.detail) from e
        return parse_create_result(api, domain)


class NamecheapDirectClient(RegistrarClient):
    """Calls the Namecheap XML API with the platform's own credentials."""

    CONTACT_ROLES = ("Registrant", "Admin", "Tech", "AuxBilling")

    def __init__(self, url: str = None, timeout: float = None,
                 transport: httpx.BaseTransport = None):
        self.url = url or settings.NAMECHEAP_URL
        self.client = httpx.Client(
            timeout=timeout or settings.REGISTRAR_TIMEOUT,
            transport=transport,
        )

    def _base_params(self, command: str) -> Dict[str, str]:
        return {
            "ApiUser": settings.NAMECHEAP_USERNAME,
            "ApiKey": settings.NAMECHEAP_API_KEY,
            "UserName": settings.NAMECHEAP_USERNAME,
            "Command": command,
            "ClientIp": settings.NAMECHEAP_CLIENT_IP,
        }

    def _call(self, command: str, params: Dict[str, str]) -> Dict[str, Any]:
        response = self.client.get(self.url, params={**self._base_params(command), **params})
        response.raise_for_status()
        return unwrap_api_response(xml_to_dict(response.text), command)

    @_read_retry
    def _call_idempotent(self, command: str, params: Dict[str, str]) -> Dict[str, Any]:
        return self._call(command, params)

    def _contact_params(self) -> Dict[str, str]:
        contact = {
            "FirstName": settings.REGISTRANT_FIRST_NAME,
            "LastName": settings.REGISTRANT_LAST_NAME,
            "Address1": settings.REGISTRANT_ADDRESS1,
            "City": settings.REGISTRANT_CITY,
            "StateProvince": settings.REGISTRANT_STATE,
            "PostalCode": settings.REGISTRANT_POSTAL_CODE,
            "Country": settings.REGISTRANT_COUNTRY,
            "Phone": settings.REGISTRANT_PHONE,
            "EmailAddress": settings.REGISTRANT_EMAIL,
        }
        return {
            f"{role}{key}": value
            for role in self.CONTACT_ROLES
            for key, value in contact.items()
        }

    def check_availability(self, domain: str) -> AvailabilityResult:
        try:
            api = self._call_idempotent("namecheap.domains.check", {"DomainList": domain})
        except httpx.HTTPError as e:
            raise RegistrarError(f"Availability check failed for {domain}: {e}") from e
        return parse_check_result(api, domain)

    def get_price_list(self) -> Dict[str, TldPrice]:
        try:
            api = self._call_idempotent(
                "namecheap.users.getPricing",
                {"ProductType": "DOMAIN", "ActionName": "REGISTER"},
            )
        except httpx.HTTPError as e:
            raise RegistrarError(f"Price list request failed: {e}") from e
        return parse_price_list(api)

    def register(self, domain: str) -> RegistrationResult:
        params = {
            "DomainName": domain,
            "Years": "1",
            "AddFreeWhoisGuard": "yes",
            "WGEnabled": "yes",
            **self._contact_params(),
        }
        if settings.NAMECHEAP_NAMESERVERS:
            params["Nameservers"] = settings.NAMECHEAP_NAMESERVERS
        try:
            api = self._call("namecheap.domains.create", params)
        except httpx.HTTPError as e:
            raise RegistrationFailed(f"Registration request failed for {domain}: {e}") from e
        except RegistrarError as e:
            raise RegistrationFailed(e.detail) from e
        return parse_create_result(api, domain)


class MockRegistrarClient(RegistrarClient):
    """Simulated registrar for local development."""

    PRICES = {
        "com": TldPrice(Decimal("10.28"), Decimal("0.20")),
        "net": TldPrice(Decimal("12.98"), Decimal("0.20")),
        "org": TldPrice(Decimal("9.58"), Decimal("0.20")),
        "io": TldPrice(Decimal("34.98"), Decimal("0.20")),
        "dev": TldPrice(Decimal("12.98"), Decimal("0.00")),
        "me": TldPrice(Decimal("3.98"), Decimal("0.00")),
    }

    def __init__(self, delay: float = 0.0):
        self.delay = delay

    def check_availability(self, domain: str) -> AvailabilityResult:
        logger.debug("Mock registrar: availability check for %s", domain)
        return AvailabilityResult(domain=domain, available=True, registrar_fee=Decimal("0.20"))

    def get_price_list(self) -> Dict[str, TldPrice]:
        return dict(self.PRICES)

    def register(self, domain: str) -> RegistrationResult:
        logger.info("MOCK MODE: simulating domain registration for %s", domain)
        if self.delay:
            time.sleep(self.delay)
        return RegistrationResult(domain=domain, registered=True, charged_amount=Decimal("0.00"))


def build_registrar_client() -> RegistrarClient:
    mode = settings.REGISTRAR_MODE.lower()
    if mode == "mock":
        return MockRegistrarClient()
    if mode == "direct":
        return NamecheapDirectClient()
    return NamecheapProxyClient()
