import asyncio
import sys

from dotenv import load_dotenv

load_dotenv()

from backend.app.core.database import async_session  # noqa: E402
from backend.app.services.users import UserService  # noqa: E402


async def make_admin(auth_id: str, is_admin: bool = True):
    async with async_session() as session:
        service = UserService(session)
        # Profile may not exist yet if the user never called the API
        user = await service.get_or_create_profile(auth_id)
        await service.set_admin(user.id, is_admin)
        state = "granted" if is_admin else "revoked"
        print(f"Admin rights {state} for {auth_id} (profile {user.id}).")


if __name__ == "__main__":
    if len(sys.argv) > 1:
        AUTH_ID = sys.argv[1]
    else:
        AUTH_ID = input("Auth id (token subject): ").strip()
    revoke = "--revoke" in sys.argv[2:]
    asyncio.run(make_admin(AUTH_ID, not revoke))
