from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional
from datetime import datetime

from ..core.security import Role

class SessionCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    role: Role

class SessionIssued(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str
    role: Role
    user_id: int = Field(..., alias="userID")
    user_name: str = Field(..., alias="userName")
    user_email: str = Field(..., alias="userEmail")
    expires_at: datetime = Field(..., alias="expiresAt")

class SessionValidation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid: bool
    role: Optional[Role] = None
    user_id: Optional[int] = Field(None, alias="userID")
    email: Optional[str] = None
    name: Optional[str] = None

class ActiveRoles(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(..., alias="userID")
    roles: List[Role]
