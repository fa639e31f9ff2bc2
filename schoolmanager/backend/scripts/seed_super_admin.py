import argparse
import asyncio

from app.core.constants import AccountStatus, UserRole
from app.core.security import create_access_token
from app.db.database import async_session_local, close_db, init_db
from app.db.repositories.user_repository import IdentityAccountRepository
from app.services.identity_provider import IdentityProviderClient


async def seed_super_admin(email: str, full_name: str):
    await init_db()
    try:
        async with async_session_local() as session:
            async with session.begin():
                repo = IdentityAccountRepository(session)
                account = await repo.get_by_email(email)
                if account:
                    print(f"Super admin already exists: {account.email}")
                else:
                    uid = await IdentityProviderClient().create_user(email, full_name)
                    account = await repo.create({
                        "id": uid,
                        "email": email.lower(),
                        "full_name": full_name,
                        "role": UserRole.SUPER_ADMIN.value,
                        "tenant_id": None,
                        "status": AccountStatus.ACTIVE.value,
                    })
                    print(f"Created super admin: {account.email}")
    finally:
        await close_db()

    print("\nAccess token:")
    print(create_access_token({"sub": account.id}))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the platform super admin")
    parser.add_argument("email")
    parser.add_argument("--name", default="Platform Admin")
    args = parser.parse_args()
    asyncio.run(seed_super_admin(args.email, args.name))
