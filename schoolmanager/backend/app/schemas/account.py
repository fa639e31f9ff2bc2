from pydantic import ConfigDict, EmailStr, Field
from typing import Optional

from app.schemas.base import CamelModel


class AccountCreate(CamelModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)


class AccountRead(CamelModel):
    id: str
    email: str
    full_name: Optional[str] = None
    role: str
    tenant_id: Optional[str] = None
    status: str

    model_config = ConfigDict(from_attributes=True)


class AdminEmailUpdate(CamelModel):
    email: EmailStr
    full_name: Optional[str] = Field(None, max_length=255)


class PasswordResetLink(CamelModel):
    email: str
    reset_link: str
