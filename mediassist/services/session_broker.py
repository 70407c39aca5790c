"""
Issues, validates and revokes per-role session tokens.

A user may hold one live token per role at the same time (for example a
PATIENT token in one tab and a DOCTOR token in another). Issuing a token for
a ``(user, role)`` pair replaces the previous token of that pair only; tokens
of other roles are never touched.
"""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Set
import logging
import time

from ..core.config import settings
from ..core.errors import InvalidCredential, RoleNotPermitted, TokenInvalid, UpstreamUnavailable
from ..core.security import Role, generate_session_token, hash_session_token, utcnow
from .credentials import CredentialVerifier, Identity
from .token_store import SessionRecord, TokenStore

logger = logging.getLogger(__name__)

# Attempts at the compare-and-set when other issuances for the same pair race
ISSUE_MAX_ATTEMPTS = 8

# Longest token the broker will look up; anything longer is not one of ours
MAX_TOKEN_LENGTH = 256

_verifier_pool = ThreadPoolExecutor(
    max_workers=settings.CREDENTIAL_VERIFIER_WORKERS,
    thread_name_prefix="credential-verifier",
)


@dataclass(frozen=True)
class IdentityClaim:
    user_id: int
    role: Role
    email: str
    display_name: str


@dataclass(frozen=True)
class IssuedSession:
    token: str
    record: SessionRecord


class SessionBroker:
    def __init__(
        self,
        store: TokenStore,
        verifier: CredentialVerifier,
        ttl: Optional[timedelta] = None,
        retention: Optional[timedelta] = None,
        verify_timeout: Optional[float] = None,
        retry_backoff: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.store = store
        self.verifier = verifier
        self.ttl = ttl or settings.session_ttl
        self.retention = retention if retention is not None else settings.session_retention
        self.verify_timeout = verify_timeout or settings.CREDENTIAL_VERIFY_TIMEOUT_SECONDS
        self.retry_backoff = (
            retry_backoff if retry_backoff is not None
            else settings.UPSTREAM_RETRY_BACKOFF_SECONDS
        )
        self.clock = clock
        self.executor = executor or _verifier_pool

    def issue(self, email: str, password: str, role: Role) -> IssuedSession:
        """Authenticate and install a fresh token for ``(user, role)``."""
        role = Role(role)
        identity = self._verify_credentials(email, password)
        if identity is None:
            logger.info("Session issuance rejected: invalid credentials")
            raise InvalidCredential()
        if role not in identity.roles:
            logger.info(f"Session issuance rejected: user {identity.user_id} cannot act as {role.value}")
            raise RoleNotPermitted(f"This account cannot act as {role.value}")

        token = generate_session_token()
        now = self.clock()
        record = SessionRecord(
            key=hash_session_token(token),
            user_id=identity.user_id,
            role=role,
            email=identity.email,
            display_name=identity.display_name,
            issued_at=now,
            expires_at=now + self.ttl,
        )

        for _ in range(ISSUE_MAX_ATTEMPTS):
            current = self.store.current_key(identity.user_id, role)
            if self.store.put(record, replaces=current):
                logger.info(f"Issued {role.value} session for user {identity.user_id}")
                return IssuedSession(token=token, record=record)
        logger.warning(f"Gave up installing {role.value} session for user {identity.user_id} under contention")
        raise UpstreamUnavailable("Session store is busy; please retry")

    def validate(self, token: Optional[str]) -> IdentityClaim:
        """Resolve a bearer token. Read-only."""
        if not token or len(token) > MAX_TOKEN_LENGTH:
            raise TokenInvalid()
        record = self.store.get(hash_session_token(token))
        if record is None or not record.is_live(self.clock()):
            raise TokenInvalid()
        return IdentityClaim(
            user_id=record.user_id,
            role=record.role,
            email=record.email,
            display_name=record.display_name,
        )

    def revoke(self, token: Optional[str]) -> None:
        """Revoke one token. Unknown or already revoked tokens are a no-op."""
        if not token or len(token) > MAX_TOKEN_LENGTH:
            return
        key = hash_session_token(token)
        record = self.store.get(key)
        if record is None or record.revoked:
            return
        if self.store.compare_and_revoke(record.user_id, record.role, key):
            logger.info(f"Revoked {record.role.value} session for user {record.user_id}")

    def revoke_all(self, user_id: int) -> None:
        """Revoke every live token of a user, across all roles."""
        for record in self.store.list_active(user_id, self.clock()):
            self.store.compare_and_revoke(record.user_id, record.role, record.key)
        logger.info(f"Revoked all sessions for user {user_id}")

    def active_roles(self, user_id: int) -> Set[Role]:
        return {record.role for record in self.store.list_active(user_id, self.clock())}

    def purge_expired(self) -> int:
        """Hard-delete tokens past expiry plus the retention period."""
        purged = self.store.purge_expired(self.clock() - self.retention)
        if purged:
            logger.info(f"Purged {purged} expired session tokens")
        return purged

    def _verify_credentials(self, email: str, password: str) -> Optional[Identity]:
        # One retry with backoff, then the outage is reported to the caller
        for attempt in range(2):
            if attempt:
                time.sleep(self.retry_backoff)
            future = self.executor.submit(self.verifier.verify, email, password)
            try:
                return future.result(timeout=self.verify_timeout)
            except FutureTimeout:
                future.cancel()
                logger.warning(
                    f"Credential verifier timed out after {self.verify_timeout}s (attempt {attempt + 1})"
                )
            except UpstreamUnavailable as exc:
                logger.warning(f"Credential verifier unavailable (attempt {attempt + 1}): {exc.message}")
        raise UpstreamUnavailable("Credential verifier is unavailable")
