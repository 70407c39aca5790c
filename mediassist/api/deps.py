from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Callable, List, Optional
from datetime import datetime
from functools import lru_cache
import redis

from ..core.config import settings
from ..core.database import get_db, get_redis, get_session_factory
from ..core.errors import AccessDenied, RateLimited, TokenInvalid, UpstreamUnavailable
from ..core.security import security, Role, utcnow, clinic_now
from ..services.credentials import CredentialVerifier, DatabaseCredentialVerifier, HTTPCredentialVerifier
from ..services.session_broker import IdentityClaim, SessionBroker
from ..services.slot_scheduler import SlotScheduler
from ..services.token_store import SQLTokenStore, TokenStore

# Clocks are dependencies so tests can pin "now"
def get_clock() -> Callable[[], datetime]:
    """UTC clock used for session timestamps."""
    return utcnow

def get_clinic_clock() -> Callable[[], datetime]:
    """Clinic wall-clock used for appointment times."""
    return clinic_now

@lru_cache()
def _http_verifier(base_url: str) -> HTTPCredentialVerifier:
    return HTTPCredentialVerifier(base_url, timeout=settings.CREDENTIAL_VERIFY_TIMEOUT_SECONDS)

def get_credential_verifier(
    session_factory: Callable[[], Session] = Depends(get_session_factory)
) -> CredentialVerifier:
    if settings.CREDENTIAL_VERIFIER_URL:
        return _http_verifier(settings.CREDENTIAL_VERIFIER_URL)
    return DatabaseCredentialVerifier(session_factory)

def get_token_store(db: Session = Depends(get_db)) -> TokenStore:
    return SQLTokenStore(db)

def get_session_broker(
    store: TokenStore = Depends(get_token_store),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> SessionBroker:
    return SessionBroker(store, verifier, clock=clock)

def get_slot_scheduler(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clinic_clock),
) -> SlotScheduler:
    return SlotScheduler(db, clock=clock)

def get_current_claim(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    broker: SessionBroker = Depends(get_session_broker),
) -> IdentityClaim:
    """Resolve the bearer session token on the request."""
    if credentials is None:
        raise TokenInvalid("Missing bearer session token")
    return broker.validate(credentials.credentials)

# Role-based access control dependencies
def require_role(allowed_roles: List[Role]):
    """Create a dependency that requires the session to act under one of the roles."""
    def role_checker(
        claim: IdentityClaim = Depends(get_current_claim)
    ) -> IdentityClaim:
        if claim.role not in allowed_roles:
            raise AccessDenied(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return claim

    return role_checker

# Rate limiting dependency
def rate_limit_check(
    request: Request,
    redis_client = Depends(get_redis)
) -> None:
    """Fixed-window rate limiting for credential-bearing endpoints."""
    client_ip = request.client.host if request.client else "unknown"
    key = f"rate_limit:{request.url.path}:{client_ip}"

    try:
        current_requests = redis_client.incr(key)
        if current_requests == 1:
            redis_client.expire(key, settings.RATE_LIMIT_WINDOW_SECONDS)
    except redis.RedisError as exc:
        raise UpstreamUnavailable("Rate limiter is unavailable") from exc

    if current_requests > settings.RATE_LIMIT_MAX_REQUESTS:
        raise RateLimited()
