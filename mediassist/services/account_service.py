from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Iterable, Optional
import logging

from ..core.errors import MalformedRequest
from ..core.security import Role, get_password_hash
from ..models.doctor import Doctor
from ..models.patient import Patient
from ..models.user import User, UserRoleGrant

logger = logging.getLogger(__name__)

class AccountService:
    def __init__(self, db: Session):
        self.db = db

    def register(
        self,
        email: str,
        password: str,
        display_name: str,
        roles: Iterable[Role],
        specialization: Optional[str] = None,
    ) -> User:
        """Create an account with a fixed set of roles and one profile per role."""
        email = email.strip().lower()
        roles = {Role(role) for role in roles}
        if not roles:
            raise MalformedRequest("At least one role is required")

        # Check if user already exists
        existing_user = self.db.query(User).filter(User.email == email).first()
        if existing_user:
            raise MalformedRequest("Email already registered")

        new_user = User(
            email=email,
            password_hash=get_password_hash(password),
            display_name=display_name,
            is_active=True,
        )
        new_user.role_grants = [UserRoleGrant(role=role) for role in sorted(roles)]
        if Role.PATIENT in roles:
            new_user.patient = Patient()
        if Role.DOCTOR in roles:
            new_user.doctor = Doctor(specialization=specialization or "General", is_available=True)

        self.db.add(new_user)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise MalformedRequest("Email already registered")
        self.db.refresh(new_user)

        logger.info(f"Registered user {new_user.id} with roles {sorted(role.value for role in roles)}")
        return new_user
