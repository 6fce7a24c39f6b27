from fastapi import APIRouter
from app.api.v1.endpoints import domain_payment, domain_routes, domains, vouchers

api_router = APIRouter()
api_router.include_router(domain_payment.router, prefix="/domain-payment", tags=["domain-payment"])
api_router.include_router(domains.router, prefix="/domains", tags=["domains"])
api_router.include_router(domain_routes.router, prefix="/domain-routes", tags=["domain-routes"])
api_router.include_router(vouchers.router, prefix="/vouchers", tags=["vouchers"])
