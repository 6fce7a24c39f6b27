"""
Custom Domain Resolution Middleware

Resolves the portfolio served on a custom domain from the Host header.
Sets request.state.portfolio_id / portfolio_type / portfolio_owner_id for
downstream handlers.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.config import settings

logger = logging.getLogger("pfdomains.domain")

# domain → (expires_at, (portfolio_id, portfolio_type, owner_id)).
# Cleared locally on route changes; the TTL bounds staleness in other processes.
_DOMAIN_CACHE: dict[str, tuple[float, tuple[str, str, str]]] = {}


def _cached(host: str):
    entry = _DOMAIN_CACHE.get(host)
    if entry is None:
        return None
    if entry[0] <= time.monotonic():
        _DOMAIN_CACHE.pop(host, None)
        return None
    return entry[1]


def _remember(host: str, value: tuple[str, str, str]) -> None:
    if len(_DOMAIN_CACHE) >= settings.DOMAIN_CACHE_MAX_ENTRIES:
        _DOMAIN_CACHE.clear()
    _DOMAIN_CACHE[host] = (time.monotonic() + settings.DOMAIN_CACHE_TTL_SECONDS, value)


class CustomDomainMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        host = request.headers.get("host", "").split(":")[0].lower()
        if host.startswith("www."):
            host = host[4:]

        request.state.custom_domain = None

        # Skip for platform hosts
        if not host or host in settings.platform_hosts or "localhost" in host:
            return await call_next(request)

        resolved = _cached(host)
        if resolved is None:
            try:
                from app.db.session import SessionLocal
                from app.services import domain_routing

                db = SessionLocal()
                try:
                    route = domain_routing.lookup(db, host)
                    if route:
                        resolved = (
                            str(route.portfolio_id),
                            route.portfolio_type or "general",
                            str(route.owner_user_id),
                        )
                        _remember(host, resolved)
                        logger.debug("Resolved custom domain %s → portfolio %s", host, route.portfolio_id)
                finally:
                    db.close()
            except Exception as e:
                logger.warning("Custom domain resolution failed for %s: %s", host, e)

        if resolved is not None:
            portfolio_id, portfolio_type, owner_id = resolved
            request.state.custom_domain = host
            request.state.portfolio_id = portfolio_id
            request.state.portfolio_type = portfolio_type
            request.state.portfolio_owner_id = owner_id

        return await call_next(request)


def invalidate_domain_cache(domain: str | None = None) -> None:
    """Clear domain cache when routes are added, re-pointed or removed."""
    if domain:
        _DOMAIN_CACHE.pop(domain, None)
    else:
        _DOMAIN_CACHE.clear()
