from pydantic import Field
from typing import Any, Dict, Optional

from app.core.constants import PlanType
from app.schemas.base import CamelModel


class InitiateRequest(CamelModel):
    amount: int = Field(..., gt=0, description="Amount in minor currency units")
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    metadata: Optional[Dict[str, Any]] = None
    plan: Optional[PlanType] = None
    reference: Optional[str] = Field(None, min_length=1, max_length=100)


class InitiateResponse(CamelModel):
    authorization_url: Optional[str] = None
    reference: str


class VerifyRequest(CamelModel):
    reference: str = Field(..., min_length=1, max_length=100)


class VerifyResponse(CamelModel):
    status: str
    reference: str
