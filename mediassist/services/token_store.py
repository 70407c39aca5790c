"""
Durable keyed storage for session tokens.

Tokens are addressed by their storage key (the SHA-256 of the bearer token).
Each ``(user_id, role)`` pair has a *head*: the key of the token currently
installed for that pair. Installing a new token is a compare-and-set on the
head, so two concurrent issuances for the same pair cannot both end up live.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple
import threading

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.security import Role
from ..models.session_token import SessionHead, SessionToken


@dataclass(frozen=True)
class SessionRecord:
    key: str
    user_id: int
    role: Role
    email: str
    display_name: str
    issued_at: datetime
    expires_at: datetime
    revoked: bool = False

    def is_live(self, now: datetime) -> bool:
        return not self.revoked and now <= self.expires_at


class TokenStore(ABC):

    @abstractmethod
    def put(self, record: SessionRecord, replaces: Optional[str] = None) -> bool:
        """Install ``record`` as head of its pair if the head is still ``replaces``.

        The previous head token is revoked in the same atomic step. Returns
        False when another writer moved the head first.
        """

    @abstractmethod
    def get(self, key: str) -> Optional[SessionRecord]:
        ...

    @abstractmethod
    def current_key(self, user_id: int, role: Role) -> Optional[str]:
        ...

    @abstractmethod
    def compare_and_revoke(self, user_id: int, role: Role, expected_key: str) -> bool:
        """Revoke ``expected_key`` and clear the head, only if it is the head."""

    @abstractmethod
    def list_active(self, user_id: int, now: datetime) -> List[SessionRecord]:
        ...

    @abstractmethod
    def purge_expired(self, cutoff: datetime) -> int:
        """Hard-delete tokens that expired before ``cutoff``."""


class InMemoryTokenStore(TokenStore):
    """Process-local store. Writers lock per (user, role); readers never lock."""

    def __init__(self):
        self._tokens: Dict[str, SessionRecord] = {}
        self._heads: Dict[Tuple[int, Role], Optional[str]] = {}
        self._locks: Dict[Tuple[int, Role], threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: int, role: Role) -> threading.Lock:
        with self._locks_guard:
            return self._locks[(user_id, role)]

    def put(self, record: SessionRecord, replaces: Optional[str] = None) -> bool:
        pair = (record.user_id, record.role)
        with self._lock_for(*pair):
            if self._heads.get(pair) != replaces:
                return False
            if replaces is not None and replaces in self._tokens:
                self._tokens[replaces] = replace(self._tokens[replaces], revoked=True)
            self._tokens[record.key] = record
            self._heads[pair] = record.key
            return True

    def get(self, key: str) -> Optional[SessionRecord]:
        return self._tokens.get(key)

    def current_key(self, user_id: int, role: Role) -> Optional[str]:
        return self._heads.get((user_id, role))

    def compare_and_revoke(self, user_id: int, role: Role, expected_key: str) -> bool:
        pair = (user_id, role)
        with self._lock_for(*pair):
            if self._heads.get(pair) != expected_key:
                return False
            self._heads[pair] = None
            if expected_key in self._tokens:
                self._tokens[expected_key] = replace(self._tokens[expected_key], revoked=True)
            return True

    def list_active(self, user_id: int, now: datetime) -> List[SessionRecord]:
        return [
            record for record in list(self._tokens.values())
            if record.user_id == user_id and record.is_live(now)
        ]

    def purge_expired(self, cutoff: datetime) -> int:
        with self._locks_guard:
            expired = [key for key, record in self._tokens.items() if record.expires_at < cutoff]
            for key in expired:
                self._tokens.pop(key, None)
        return len(expired)


class SQLTokenStore(TokenStore):
    """Token store over the ``session_tokens``/``session_heads`` tables.

    Every write starts with a statement against the head row, so the row
    lock (or SQLite's write lock) is held before anything else is read.
    """

    def __init__(self, db: Session):
        self.db = db

    def put(self, record: SessionRecord, replaces: Optional[str] = None) -> bool:
        if replaces is None:
            head_matches = SessionHead.token_hash.is_(None)
        else:
            head_matches = SessionHead.token_hash == replaces
        try:
            moved = self.db.execute(
                update(SessionHead)
                .where(
                    SessionHead.user_id == record.user_id,
                    SessionHead.role == record.role,
                    head_matches,
                )
                .values(token_hash=record.key)
            ).rowcount
            if not moved:
                if replaces is not None:
                    self.db.rollback()
                    return False
                # First issuance for this pair; a concurrent insert loses on the primary key
                self.db.execute(
                    insert(SessionHead).values(
                        user_id=record.user_id, role=record.role, token_hash=record.key
                    )
                )
            if replaces is not None:
                self.db.execute(
                    update(SessionToken)
                    .where(SessionToken.token_hash == replaces)
                    .values(revoked=True)
                )
            self.db.add(self._to_row(record))
            self.db.commit()
            return True
        except IntegrityError:
            self.db.rollback()
            return False

    def get(self, key: str) -> Optional[SessionRecord]:
        row = self.db.get(SessionToken, key, populate_existing=True)
        return self._to_record(row) if row else None

    def current_key(self, user_id: int, role: Role) -> Optional[str]:
        return self.db.execute(
            select(SessionHead.token_hash).where(
                SessionHead.user_id == user_id,
                SessionHead.role == role,
            )
        ).scalar_one_or_none()

    def compare_and_revoke(self, user_id: int, role: Role, expected_key: str) -> bool:
        cleared = self.db.execute(
            update(SessionHead)
            .where(
                SessionHead.user_id == user_id,
                SessionHead.role == role,
                SessionHead.token_hash == expected_key,
            )
            .values(token_hash=None)
        ).rowcount
        if not cleared:
            self.db.rollback()
            return False
        self.db.execute(
            update(SessionToken)
            .where(SessionToken.token_hash == expected_key)
            .values(revoked=True)
        )
        self.db.commit()
        return True

    def list_active(self, user_id: int, now: datetime) -> List[SessionRecord]:
        rows = self.db.execute(
            select(SessionToken).where(
                SessionToken.user_id == user_id,
                SessionToken.revoked.is_(False),
                SessionToken.expires_at >= now,
            ).execution_options(populate_existing=True)
        ).scalars().all()
        return [self._to_record(row) for row in rows]

    def purge_expired(self, cutoff: datetime) -> int:
        deleted = self.db.execute(
            delete(SessionToken).where(SessionToken.expires_at < cutoff)
        ).rowcount
        self.db.commit()
        return deleted

    @staticmethod
    def _to_row(record: SessionRecord) -> SessionToken:
        return SessionToken(
            token_hash=record.key,
            user_id=record.user_id,
            role=record.role,
            email=record.email,
            display_name=record.display_name,
            issued_at=record.issued_at,
            expires_at=record.expires_at,
            revoked=record.revoked,
        )

    @staticmethod
    def _to_record(row: SessionToken) -> SessionRecord:
        return SessionRecord(
            key=row.token_hash,
            user_id=row.user_id,
            role=Role(row.role),
            email=row.email,
            display_name=row.display_name,
            issued_at=row.issued_at,
            expires_at=row.expires_at,
            revoked=bool(row.revoked),
        )
