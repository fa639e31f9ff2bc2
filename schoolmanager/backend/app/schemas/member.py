from pydantic import ConfigDict, Field
from typing import Optional

from app.schemas.base import CamelModel


class MemberCreate(CamelModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    class_id: Optional[str] = Field(None, max_length=64)


class MemberTransfer(CamelModel):
    tenant_id: str = Field(..., min_length=1)


class MemberRead(CamelModel):
    id: str
    tenant_id: str
    full_name: str
    class_id: Optional[str] = None
    status: str

    model_config = ConfigDict(from_attributes=True)
