"""
Domain purchase error taxonomy.

Every error carries the HTTP status it maps to; ``app.main`` translates
``DomainServiceError`` into a ``{"detail": ...}`` JSON response.
"""
from typing import Optional


class DomainServiceError(Exception):
    status_code = 500
    default_detail = "Domain service error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidDomain(DomainServiceError):
    status_code = 400
    default_detail = "Invalid domain format (missing TLD)."


class DomainUnavailable(DomainServiceError):
    status_code = 400
    default_detail = "Domain not available"


class DomainNotFound(DomainServiceError):
    status_code = 404
    default_detail = "Domain not found"


class DomainRouteConflict(DomainServiceError):
    status_code = 409
    default_detail = "Domain already mapped"


class PortfolioNotOwned(DomainServiceError):
    status_code = 403
    default_detail = "You do not own this portfolio"


class PricingUnavailable(DomainServiceError):
    status_code = 502
    default_detail = "Registrar pricing unavailable"


class RegistrarError(DomainServiceError):
    """Registrar call failed or answered with Status=ERROR."""
    status_code = 502
    default_detail = "Registrar request failed"


class RegistrationFailed(RegistrarError):
    default_detail = "Domain registration failed"


class HostingError(DomainServiceError):
    status_code = 502
    default_detail = "Hosting provider request failed"


class HostingAttachFailed(HostingError):
    default_detail = "Could not attach domain to hosting project"


class PaymentProviderError(DomainServiceError):
    status_code = 502
    default_detail = "Failed to initiate payment."


class WebhookSignatureInvalid(DomainServiceError):
    status_code = 400
    default_detail = "Webhook signature verification failed"


class VoucherNotApplicable(DomainServiceError):
    status_code = 400
    default_detail = "Voucher cannot be applied"


class DuplicateFulfillment(DomainServiceError):
    """Raised internally when a payment intent was already claimed."""
    status_code = 200
    default_detail = "Fulfillment already processed"


class InvalidSagaTransition(DomainServiceError):
    status_code = 409
    default_detail = "Illegal fulfillment state transition"
