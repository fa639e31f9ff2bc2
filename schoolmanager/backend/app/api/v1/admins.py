# backend/app/api/v1/admins.py
from fastapi import APIRouter, Depends

from app.api.dependencies import get_account_service, require_role
from app.core.constants import UserRole
from app.db.models.user import IdentityAccount
from app.middleware.rate_limit import sensitive_rate_limit
from app.schemas.account import AccountRead, AdminEmailUpdate, PasswordResetLink
from app.services.account_service import AccountService

router = APIRouter(dependencies=[Depends(sensitive_rate_limit)])


@router.put("/{admin_id}/email", response_model=AccountRead)
async def update_admin_email(
    admin_id: str,
    body: AdminEmailUpdate,
    account: IdentityAccount = Depends(require_role(UserRole.SUPER_ADMIN)),
    accounts: AccountService = Depends(get_account_service),
):
    """Change a school admin's login email"""
    return await accounts.update_admin_email(admin_id, body.email, body.full_name, actor_id=account.id)


@router.post("/{admin_id}/password-reset", response_model=PasswordResetLink)
async def reset_admin_password(
    admin_id: str,
    account: IdentityAccount = Depends(require_role(UserRole.SUPER_ADMIN)),
    accounts: AccountService = Depends(get_account_service),
):
    """Issue a password reset link for a school admin"""
    email, link = await accounts.reset_admin_password(admin_id, actor_id=account.id)
    return PasswordResetLink(email=email, reset_link=link)
