import warnings
from decimal import Decimal
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Known insecure default keys (must never be used in production) ──
_INSECURE_KEYS = {
    "change_this",
    "change_this_to_a_secure_random_string",
    "CHANGE_THIS_PRODUCTION_SECRET_MIN_32_CHARS",
    "secret",
}


class Settings(BaseSettings):
    APP_NAME: str = "Portfolio Domains API"
    APP_ENV: str = "development"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "change_this"
    ALGORITHM: str = "HS256"

    # CORS
    BACKEND_CORS_ORIGINS: str = ""

    # Frontend (Stripe success / cancel redirects)
    FRONTEND_URL: str = "http://localhost:3000"

    # Hosts that belong to the platform itself, never resolved as custom domains
    PLATFORM_HOSTS: str = "localhost,127.0.0.1,findvirtualme.com,www.findvirtualme.com,findvirtual.me,www.findvirtual.me"
    DOMAIN_CACHE_TTL_SECONDS: int = 300
    DOMAIN_CACHE_MAX_ENTRIES: int = 10000

    # Database
    DATABASE_URL: Optional[str] = None
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "portfolio_domains"

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # Registrar (Namecheap)
    REGISTRAR_MODE: str = "proxy"            # proxy / direct / mock
    REGISTRAR_TIMEOUT: float = 30.0
    NAMECHEAP_PROXY_URL: str = "http://localhost:7000/"
    NAMECHEAP_PROXY_KEY: str = ""
    NAMECHEAP_URL: str = "https://api.sandbox.namecheap.com/xml.response"
    NAMECHEAP_USERNAME: str = ""
    NAMECHEAP_API_KEY: str = ""
    NAMECHEAP_CLIENT_IP: str = ""
    NAMECHEAP_NAMESERVERS: str = ""          # comma separated, optional

    # Registrant contact applied to Registrant / Admin / Tech / AuxBilling
    REGISTRANT_FIRST_NAME: str = ""
    REGISTRANT_LAST_NAME: str = ""
    REGISTRANT_ADDRESS1: str = ""
    REGISTRANT_CITY: str = ""
    REGISTRANT_STATE: str = ""
    REGISTRANT_POSTAL_CODE: str = ""
    REGISTRANT_COUNTRY: str = ""
    REGISTRANT_PHONE: str = ""
    REGISTRANT_EMAIL: str = ""

    # Pricing
    DOMAIN_FLAT_PRICE: Decimal = Decimal("12.99")   # retail price for cheap TLDs
    DOMAIN_TLD_MARKUP: Decimal = Decimal("2.00")    # markup above the flat tier
    PRICING_CACHE_TTL_SECONDS: int = 24 * 60 * 60
    DOMAIN_CURRENCY: str = "usd"

    # Hosting (Vercel)
    VERCEL_API_URL: str = "https://api.vercel.com"
    VERCEL_TOKEN: str = ""
    VERCEL_PROJECT_ID: str = "frontend-find-virtual-me"
    VERCEL_TEAM_ID: str = ""
    HOSTING_TIMEOUT: float = 20.0
    HOSTING_APEX_A_RECORD: str = "76.76.21.21"

    # Payments (Stripe)
    STRIPE_MODE: str = "test"                # test / live
    STRIPE_SECRET_KEY_TEST: str = ""
    STRIPE_SECRET_KEY_LIVE: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_AUTOMATIC_TAX: bool = False

    # Internal service-to-service calls (voucher grants)
    INTERNAL_API_KEY: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @model_validator(mode="after")
    def _validate_production_security(self) -> "Settings":
        """Block startup if critical secrets are insecure in production / staging."""
        if self.APP_ENV in ("production", "staging"):
            # ── SECRET_KEY ──
            if self.SECRET_KEY in _INSECURE_KEYS or len(self.SECRET_KEY) < 32:
                raise ValueError(
                    f"SECRET_KEY is insecure ('{self.SECRET_KEY[:8]}…'). "
                    "Set a strong random key (≥ 32 chars) in .env or environment."
                )
            # ── Payments ──
            if not self.stripe_secret_key:
                raise ValueError(
                    f"Stripe secret key for mode '{self.STRIPE_MODE}' is not set."
                )
            if not self.STRIPE_WEBHOOK_SECRET:
                raise ValueError("STRIPE_WEBHOOK_SECRET must be set; webhooks cannot be verified.")
            # ── Registrar ──
            if self.REGISTRAR_MODE == "mock":
                raise ValueError("REGISTRAR_MODE=mock is not allowed outside development.")
            if self.POSTGRES_PASSWORD in ("postgres", "") and not self.DATABASE_URL:
                warnings.warn(
                    "POSTGRES_PASSWORD is still the default 'postgres'.",
                    UserWarning,
                    stacklevel=2,
                )
        return self

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_SERVER}/{self.POSTGRES_DB}"
        )

    @property
    def stripe_secret_key(self) -> str:
        if self.STRIPE_MODE == "live":
            return self.STRIPE_SECRET_KEY_LIVE
        return self.STRIPE_SECRET_KEY_TEST

    @property
    def platform_hosts(self) -> set[str]:
        return {h.strip().lower() for h in self.PLATFORM_HOSTS.split(",") if h.strip()}

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_staging(self) -> bool:
        return self.APP_ENV == "staging"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

settings = Settings()
