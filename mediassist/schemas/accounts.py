from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional

from ..core.security import Role

class AccountCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    display_name: str = Field(..., alias="displayName", min_length=1, max_length=200)
    roles: List[Role] = Field(..., min_length=1)
    specialization: Optional[str] = Field(None, max_length=100)

class AccountResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(..., alias="userID")
    email: str
    display_name: str = Field(..., alias="displayName")
    roles: List[Role]
    patient_id: Optional[int] = Field(None, alias="patientID")
    doctor_id: Optional[int] = Field(None, alias="doctorID")
