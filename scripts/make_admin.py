# scripts/make_admin.py
# uso: python -m scripts.make_admin email@exemplo.com
import sys, asyncio
if sys.platform.startswith("win"):
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from getpass import getpass
from sqlalchemy import select

from storefront.db.session import AsyncSessionLocal
import storefront.db.models  # noqa: F401
from storefront.modules.users.models import User, UserRole, UserStatus
from storefront.core.security import hash_password


async def main(email: str) -> int:
    email = email.strip().lower()
    async with AsyncSessionLocal() as db:
        res = await db.execute(select(User).where(User.email == email))
        user = res.scalar_one_or_none()

        if user is None:
            # usuário ainda não existe: cria já como ADMIN
            full_name = input("Nome completo: ").strip() or "Administrador"
            password = getpass("Senha: ")
            if len(password) < 8:
                print("Senha precisa ter ao menos 8 caracteres")
                return 1
            user = User(
                full_name=full_name,
                email=email,
                password_hash=hash_password(password),
                role=UserRole.ADMIN,
                status=UserStatus.ACTIVE,
            )
            db.add(user)
            await db.commit()
            await db.refresh(user)
            print(f"Admin criado: {user.id} ({user.email})")
            return 0

        if user.role == UserRole.ADMIN:
            print(f"{user.email} já é ADMIN")
            return 0

        user.role = UserRole.ADMIN
        await db.commit()
        print(f"{user.email} promovido a ADMIN")
        return 0


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("uso: python -m scripts.make_admin <email>")
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1])))
