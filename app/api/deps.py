from functools import lru_cache
from typing import Generator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.crud import crud_user
from app.db.session import SessionLocal
from app.models.user import User
from app.services.hosting_client import HostingDomainClient
from app.services.payment_provider import PaymentProvider
from app.services.pricing import PriceListCache, PricingEngine
from app.services.registrar_client import RegistrarClient, build_registrar_client

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    db: Session = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception
    try:
        payload = jwt.decode(
            credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM]
        )
        user_id = UUID(str(payload.get("sub")))
    except (JWTError, ValueError):
        raise credentials_exception
    user = crud_user.get(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user


def get_current_active_superuser(current_user: User = Depends(get_current_active_user)) -> User:
    if not current_user.is_superuser:
        raise HTTPException(status_code=403, detail="The user doesn't have enough privileges")
    return current_user


def require_internal_key(x_internal_key: Optional[str] = Header(default=None)) -> None:
    if not settings.INTERNAL_API_KEY or x_internal_key != settings.INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal key")


# ── External collaborators (one instance per process) ──

@lru_cache
def get_registrar_client() -> RegistrarClient:
    return build_registrar_client()


@lru_cache
def get_hosting_client() -> HostingDomainClient:
    return HostingDomainClient()


@lru_cache
def get_pricing_engine() -> PricingEngine:
    return PricingEngine(get_registrar_client(), PriceListCache())


@lru_cache
def get_payment_provider() -> PaymentProvider:
    return PaymentProvider()
