from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from ..core.database import Base
from ..core.security import Role

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=True)
    display_name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    role_grants = relationship("UserRoleGrant", back_populates="user", cascade="all, delete-orphan")
    patient = relationship("Patient", back_populates="user", uselist=False)
    doctor = relationship("Doctor", back_populates="user", uselist=False)

    @property
    def roles(self) -> frozenset:
        return frozenset(grant.role for grant in self.role_grants)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"

class UserRoleGrant(Base):
    """A role the account may act under; written once at account creation."""
    __tablename__ = "user_roles"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    role = Column(SQLEnum(Role), primary_key=True)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="role_grants")

    def __repr__(self):
        return f"<UserRoleGrant(user_id={self.user_id}, role='{self.role}')>"
