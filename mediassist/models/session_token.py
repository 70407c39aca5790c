from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum as SQLEnum
from sqlalchemy.sql import func

from ..core.database import Base
from ..core.security import Role

class SessionToken(Base):
    __tablename__ = "session_tokens"

    # SHA-256 of the bearer token
    token_hash = Column(String(64), primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    role = Column(SQLEnum(Role), nullable=False)

    # Identity snapshot returned by validation
    email = Column(String(255), nullable=False)
    display_name = Column(String(200), nullable=False)

    issued_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    revoked = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f"<SessionToken(user_id={self.user_id}, role='{self.role}', revoked={self.revoked})>"

class SessionHead(Base):
    """Points at the token currently installed for one (user, role) pair."""
    __tablename__ = "session_heads"

    user_id = Column(Integer, primary_key=True)
    role = Column(SQLEnum(Role), primary_key=True)
    token_hash = Column(String(64), nullable=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<SessionHead(user_id={self.user_id}, role='{self.role}')>"
