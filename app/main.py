from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.api.v1.api import api_router
from app.core.exceptions import DomainServiceError
from app.middleware.request_logging import RequestLoggingMiddleware
from app.middleware.metrics import PrometheusMiddleware, metrics_endpoint, set_app_info
from app.middleware.custom_domain import CustomDomainMiddleware
from app.logging_config import setup_logging

# ── Initialize structured logging ──
setup_logging()

app = FastAPI(
    title=settings.APP_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

# Set all CORS enabled origins
cors_origins = ["http://localhost:3000", "http://localhost:5173"]
if settings.FRONTEND_URL:
    cors_origins.append(settings.FRONTEND_URL.rstrip("/"))
if settings.BACKEND_CORS_ORIGINS:
    if isinstance(settings.BACKEND_CORS_ORIGINS, str):
        cors_origins.extend([origin.strip() for origin in settings.BACKEND_CORS_ORIGINS.split(",") if origin.strip()])
    else:
        cors_origins.extend([str(origin) for origin in settings.BACKEND_CORS_ORIGINS])

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging middleware – request ID, timing, context
app.add_middleware(RequestLoggingMiddleware)

# Prometheus metrics middleware – request count, latency, in-progress
app.add_middleware(PrometheusMiddleware)

# Custom domain resolution middleware – resolves portfolio from Host header
app.add_middleware(CustomDomainMiddleware)


@app.exception_handler(DomainServiceError)
async def domain_service_error_handler(request: Request, exc: DomainServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Mount API v1
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    return {"message": f"Welcome to {settings.APP_NAME}", "docs": "/docs"}


@app.get("/health")
def health_check():
    return {"status": "ok", "env": settings.APP_ENV}


# Prometheus metrics endpoint
app.add_route("/metrics", metrics_endpoint)
set_app_info(version="1.0.0", env=settings.APP_ENV)
