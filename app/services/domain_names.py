"""Domain name normalization shared by pricing, checkout and routing."""
import re
from typing import Optional, Tuple

from app.core.exceptions import InvalidDomain

_LABEL = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")


def normalize_domain(value: Optional[str]) -> Optional[str]:
    """Lowercase, strip scheme, ``www.``, path, port and trailing dot."""
    if not value or not isinstance(value, str):
        return None
    domain = value.strip().lower()
    domain = re.sub(r"^https?://", "", domain)
    domain = re.sub(r"^www\.", "", domain)
    domain = re.sub(r"/.*$", "", domain)
    domain = re.sub(r":\d+$", "", domain)
    domain = re.sub(r"\.$", "", domain)
    return domain or None


def split_domain(value: str) -> Tuple[str, str]:
    """
    Split a domain into (label, tld).

    The TLD is everything after the first label, so ``shop.co.uk`` yields
    ``("shop", "co.uk")``.
    """
    domain = normalize_domain(value)
    if not domain or "." not in domain:
        raise InvalidDomain()
    label, tld = domain.split(".", 1)
    if not _LABEL.match(label) or not all(_LABEL.match(part) for part in tld.split(".")):
        raise InvalidDomain(f"Invalid domain: {value}")
    return label, tld


def require_domain(value: Optional[str]) -> str:
    """Normalize and validate, returning the canonical domain."""
    label, tld = split_domain(value or "")
    return f"{label}.{tld}"
