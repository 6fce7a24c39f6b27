"""
Hosting Domain Client (Vercel)

Attaches custom domains to the portfolio frontend project and checks their
verification state. Provider responses are reduced to ``HostingDomainStatus``
so callers never touch raw payloads.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import settings
from app.core.exceptions import HostingAttachFailed, HostingError

logger = logging.getLogger("pfdomains.hosting")


@dataclass
class DnsRecord:
    type: str
    name: str
    value: str

    def as_dict(self) -> Dict[str, str]:
        return {"type": self.type, "name": self.name, "value": self.value}


@dataclass
class HostingDomainStatus:
    domain: str
    verified: bool
    verification_instructions: List[DnsRecord] = field(default_factory=list)

    def required_record(self) -> Optional[DnsRecord]:
        return self.verification_instructions[0] if self.verification_instructions else None


def parse_domain_payload(payload: Dict[str, Any], domain: str) -> HostingDomainStatus:
    verified = payload.get("verified") is True
    records = []
    for entry in payload.get("verification") or []:
        records.append(DnsRecord(
            type=str(entry.get("type", "TXT")).upper(),
            name=entry.get("domain") or domain,
            value=entry.get("value", ""),
        ))
    if not verified and not records:
        # Apex domains without a pending challenge only need the A record
        records.append(DnsRecord(type="A", name="@", value=settings.HOSTING_APEX_A_RECORD))
    return HostingDomainStatus(
        domain=payload.get("name") or domain,
        verified=verified,
        verification_instructions=records,
    )


class HostingDomainClient:
    """Vercel REST client scoped to one project."""

    def __init__(self, token: str = None, project_id: str = None, team_id: str = None,
                 base_url: str = None, transport: httpx.BaseTransport = None):
        self.project_id = project_id or settings.VERCEL_PROJECT_ID
        self.team_id = team_id if team_id is not None else settings.VERCEL_TEAM_ID
        self.client = httpx.Client(
            base_url=base_url or settings.VERCEL_API_URL,
            headers={"Authorization": f"Bearer {token if token is not None else settings.VERCEL_TOKEN}"},
            timeout=settings.HOSTING_TIMEOUT,
            transport=transport,
        )

    def _params(self) -> Dict[str, str]:
        return {"teamId": self.team_id} if self.team_id else {}

    def attach(self, domain: str) -> HostingDomainStatus:
        """Add the domain to the project; the response says whether it is already verified."""
        try:
            response = self.client.post(
                f"/v10/projects/{self.project_id}/domains",
                params=self._params(),
                json={"name": domain},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise HostingAttachFailed(
                f"Vercel API error: {e.response.status_code} {_error_message(e.response)}"
            ) from e
        except httpx.HTTPError as e:
            raise HostingAttachFailed(f"Vercel API error: {e}") from e
        logger.info("Domain added to hosting project: %s", domain)
        return parse_domain_payload(response.json(), domain)

    def verify(self, domain: str) -> HostingDomainStatus:
        """
        Ask the provider to re-check verification.

        A 400 answer means "not verified yet"; the current challenge is then
        read back through ``status``.
        """
        try:
            response = self.client.post(
                f"/v9/projects/{self.project_id}/domains/{domain}/verify",
                params=self._params(),
            )
            if response.status_code == 400:
                logger.info("Domain %s not verified yet: %s", domain, _error_message(response))
                return self.status(domain)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise HostingError(f"Failed to verify domain: {e}") from e
        return parse_domain_payload(response.json(), domain)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    def _get_domain(self, domain: str) -> httpx.Response:
        return self.client.get(
            f"/v9/projects/{self.project_id}/domains/{domain}",
            params=self._params(),
        )

    def status(self, domain: str) -> HostingDomainStatus:
        try:
            response = self._get_domain(domain)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise HostingError(f"Failed to get domain status: {e}") from e
        return parse_domain_payload(response.json(), domain)

    def remove(self, domain: str) -> None:
        try:
            response = self.client.delete(
                f"/v9/projects/{self.project_id}/domains/{domain}",
                params=self._params(),
            )
            if response.status_code == 404:
                return
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise HostingError(f"Failed to remove domain: {e}") from e
        logger.info("Domain removed from hosting project: %s", domain)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or error.get("code") or ""
    return str(body)[:200]
