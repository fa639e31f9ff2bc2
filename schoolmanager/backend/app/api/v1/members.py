# backend/app/api/v1/members.py
from fastapi import APIRouter, Depends, Response, status

from app.api.dependencies import get_member_service, require_role
from app.core.constants import UserRole
from app.db.models.user import IdentityAccount
from app.schemas.member import MemberCreate, MemberRead, MemberTransfer
from app.services.member_service import MemberService

router = APIRouter()


@router.post("", response_model=MemberRead, status_code=status.HTTP_201_CREATED)
async def enroll_member(
    body: MemberCreate,
    account: IdentityAccount = Depends(require_role(UserRole.TENANT_ADMIN)),
    members: MemberService = Depends(get_member_service),
):
    """Enroll a student in the caller's school"""
    return await members.enroll(account.tenant_id, body.full_name, class_id=body.class_id)


@router.delete("/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    member_id: str,
    account: IdentityAccount = Depends(require_role(UserRole.TENANT_ADMIN, UserRole.SUPER_ADMIN)),
    members: MemberService = Depends(get_member_service),
):
    scope = None if account.role == UserRole.SUPER_ADMIN.value else account.tenant_id
    await members.remove(member_id, tenant_id=scope)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{member_id}/transfer", response_model=MemberRead)
async def transfer_member(
    member_id: str,
    body: MemberTransfer,
    account: IdentityAccount = Depends(require_role(UserRole.SUPER_ADMIN)),
    members: MemberService = Depends(get_member_service),
):
    """Move a student to another school"""
    return await members.transfer(member_id, body.tenant_id)
