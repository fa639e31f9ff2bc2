# backend/app/api/v1/staff.py
from fastapi import APIRouter, Depends, status

from app.api.dependencies import get_account_service, require_role
from app.core.constants import UserRole
from app.db.models.user import IdentityAccount
from app.schemas.account import AccountCreate, AccountRead
from app.services.account_service import AccountService

router = APIRouter()


@router.post("", response_model=AccountRead, status_code=status.HTTP_201_CREATED)
async def create_staff(
    body: AccountCreate,
    account: IdentityAccount = Depends(require_role(UserRole.TENANT_ADMIN)),
    accounts: AccountService = Depends(get_account_service),
):
    """Provision a staff login in the caller's school"""
    return await accounts.create_staff(account.tenant_id, body.email, body.full_name, actor_id=account.id)
