from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, FrozenSet, Optional
import logging

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.errors import UpstreamUnavailable
from ..core.security import Role, verify_password
from ..models.user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: int
    email: str
    display_name: str
    roles: FrozenSet[Role]


class CredentialVerifier(ABC):
    """Checks an email/password pair.

    Returns the matching ``Identity`` or None for bad credentials. Raises
    ``UpstreamUnavailable`` when the backing service cannot answer.
    """

    @abstractmethod
    def verify(self, email: str, password: str) -> Optional[Identity]:
        ...


class DatabaseCredentialVerifier(CredentialVerifier):
    """Verifies against the local ``users`` table with passlib hashes."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def verify(self, email: str, password: str) -> Optional[Identity]:
        db = self.session_factory()
        try:
            user = db.execute(
                select(User)
                .options(selectinload(User.role_grants))
                .where(User.email == email.strip().lower())
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error(f"Credential lookup failed: {exc.__class__.__name__}")
            raise UpstreamUnavailable("Credential store is unavailable") from exc
        finally:
            db.close()

        if not user or not user.is_active:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return Identity(
            user_id=user.id,
            email=user.email,
            display_name=user.display_name,
            roles=user.roles,
        )


class HTTPCredentialVerifier(CredentialVerifier):
    """Delegates to a remote identity service.

    ``POST {base_url}/verify`` with ``{"email", "password"}``; a 200 answer
    carries ``{"userID", "email", "displayName", "roles"}``, 401/403/404 mean
    the credentials are wrong, anything else is treated as an outage.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout)

    def verify(self, email: str, password: str) -> Optional[Identity]:
        try:
            response = self.client.post(
                f"{self.base_url}/verify",
                json={"email": email, "password": password},
            )
        except httpx.HTTPError as exc:
            logger.warning(f"Credential service request failed: {exc.__class__.__name__}")
            raise UpstreamUnavailable("Credential service is unavailable") from exc

        if response.status_code in (401, 403, 404):
            return None
        if response.status_code != 200:
            logger.warning(f"Credential service answered {response.status_code}")
            raise UpstreamUnavailable("Credential service is unavailable")

        try:
            data = response.json()
            return Identity(
                user_id=int(data["userID"]),
                email=data["email"],
                display_name=data.get("displayName") or data["email"],
                roles=frozenset(Role(role) for role in data.get("roles", [])),
            )
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Credential service returned an unusable identity")
            raise UpstreamUnavailable("Credential service returned an unusable identity") from exc
