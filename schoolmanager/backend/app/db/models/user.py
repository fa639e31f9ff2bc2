# backend/app/db/models/user.py
from sqlalchemy import Column, String, ForeignKey
from app.db.base import BaseModel


class IdentityAccount(BaseModel):
    """Application profile for an identity-provider principal"""
    __tablename__ = "identity_accounts"

    # Same id as the external principal (uid)
    id = Column(String(128), primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)

    role = Column(String(50), nullable=False)  # super_admin, tenant_admin, staff
    # Nullable only for super_admin
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True, index=True)

    status = Column(String(20), default="active", nullable=False)

    @property
    def is_active(self) -> bool:
        return self.status == "active"
