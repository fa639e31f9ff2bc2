# backend/app/services/account_service.py
import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.audit_log import AuditLogger, AuditEventType
from app.core.constants import AccountStatus, TenantStatus, UserRole
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.db.models.user import IdentityAccount
from app.db.repositories.tenant_repository import TenantRepository
from app.db.repositories.user_repository import IdentityAccountRepository
from app.services.identity_provider import IdentityProviderClient

logger = logging.getLogger(__name__)

_CREATED_EVENTS = {
    UserRole.TENANT_ADMIN: AuditEventType.TENANT_ADMIN_CREATED,
    UserRole.STAFF: AuditEventType.STAFF_CREATED,
}


class AccountService:
    """Provisions tenant-bound login accounts"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        identity_provider: IdentityProviderClient,
        audit: AuditLogger,
    ):
        self.session_factory = session_factory
        self.identity_provider = identity_provider
        self.audit = audit

    async def create_tenant_admin(
        self, tenant_id: str, email: str, full_name: str, actor_id: Optional[str] = None
    ) -> IdentityAccount:
        return await self._provision(UserRole.TENANT_ADMIN, tenant_id, email, full_name, actor_id)

    async def create_staff(
        self, tenant_id: str, email: str, full_name: str, actor_id: Optional[str] = None
    ) -> IdentityAccount:
        return await self._provision(UserRole.STAFF, tenant_id, email, full_name, actor_id)

    async def _provision(
        self,
        role: UserRole,
        tenant_id: str,
        email: str,
        full_name: str,
        actor_id: Optional[str],
    ) -> IdentityAccount:
        email = (email or "").strip().lower()
        full_name = (full_name or "").strip()
        if not email or not full_name:
            raise ValidationError("email and full name are required")

        async with self.session_factory() as session:
            tenant = await TenantRepository(session).get_by_id(tenant_id)
            if tenant is None:
                raise NotFoundError("Tenant not found")
            if tenant.status != TenantStatus.ACTIVE.value:
                raise ValidationError("Tenant is not active")
            if await IdentityAccountRepository(session).get_by_email(email) is not None:
                raise ConflictError("An account with this email already exists")

        uid = await self.identity_provider.create_user(email, full_name)

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    account = await IdentityAccountRepository(session).create({
                        "id": uid,
                        "email": email,
                        "full_name": full_name,
                        "role": role.value,
                        "tenant_id": tenant_id,
                        "status": AccountStatus.ACTIVE.value,
                    })
        except IntegrityError:
            # lost a race on the email; the principal we just made is orphaned
            logger.warning(f"Account insert conflicted for {email}, removing principal {uid}")
            try:
                await self.identity_provider.delete_user(uid)
            except Exception as e:
                logger.error(f"Failed removing orphaned principal {uid}: {e}")
            raise ConflictError("An account with this email already exists")

        logger.info(f"Created {role.value} account {uid}", extra={"tenant_id": tenant_id, "user_id": uid})
        await self.audit.append(
            _CREATED_EVENTS[role],
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_id=uid,
            metadata={"email": email, "role": role.value},
        )
        return account

    async def update_admin_email(
        self,
        admin_id: str,
        new_email: str,
        full_name: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> IdentityAccount:
        """
        Change a school admin's login email

        The identity provider is updated before the profile row, so a
        provider failure leaves both unchanged.

        Raises:
            NotFoundError: no tenant_admin with this id
            ConflictError: the email belongs to another account
        """
        new_email = (new_email or "").strip().lower()
        full_name = (full_name or "").strip() or None
        if not new_email:
            raise ValidationError("email is required")

        async with self.session_factory() as session:
            accounts = IdentityAccountRepository(session)
            admin = await accounts.get(admin_id)
            if admin is None or admin.role != UserRole.TENANT_ADMIN.value:
                raise NotFoundError("School admin not found")
            previous_email = admin.email
            owner = await accounts.get_by_email(new_email)
            if owner is not None and owner.id != admin_id:
                raise ConflictError("An account with this email already exists")

        await self.identity_provider.update_user(admin_id, new_email, full_name)

        changes = {"email": new_email}
        if full_name:
            changes["full_name"] = full_name
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    accounts = IdentityAccountRepository(session)
                    await accounts.update(admin_id, changes)
                    admin = await accounts.get(admin_id)
        except IntegrityError:
            logger.warning(f"Email update conflicted for {admin_id}, restoring principal email")
            try:
                await self.identity_provider.update_user(admin_id, previous_email)
            except Exception as e:
                logger.error(f"Failed restoring principal email for {admin_id}: {e}")
            raise ConflictError("An account with this email already exists")

        logger.info(f"Updated email for admin {admin_id}", extra={"tenant_id": admin.tenant_id, "user_id": admin_id})
        await self.audit.append(
            AuditEventType.TENANT_ADMIN_EMAIL_UPDATED,
            tenant_id=admin.tenant_id,
            actor_id=actor_id,
            actor_role=UserRole.SUPER_ADMIN.value,
            entity_id=admin_id,
            metadata={"email": new_email, "previous_email": previous_email},
        )
        return admin

    async def reset_admin_password(self, admin_id: str, actor_id: Optional[str] = None) -> Tuple[str, str]:
        """Issue a password reset link for a school admin. Returns (email, link)."""
        async with self.session_factory() as session:
            admin = await IdentityAccountRepository(session).get(admin_id)
        if admin is None or admin.role != UserRole.TENANT_ADMIN.value:
            raise NotFoundError("School admin not found")

        link = await self.identity_provider.generate_password_reset_link(admin.email)

        await self.audit.append(
            AuditEventType.TENANT_ADMIN_PASSWORD_RESET,
            tenant_id=admin.tenant_id,
            actor_id=actor_id,
            actor_role=UserRole.SUPER_ADMIN.value,
            entity_id=admin_id,
            metadata={"email": admin.email},
        )
        return admin.email, link
