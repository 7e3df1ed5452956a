import asyncio

from dotenv import load_dotenv

load_dotenv()

from backend.app.core.base import Base  # noqa: E402
from backend.app.core.database import engine  # noqa: E402
from backend.app.models import (  # noqa: E402,F401
    affiliate,
    cart,
    commission,
    order,
    payment,
    product,
    user,
    withdrawal,
)


async def reset():
    """Drop and recreate every marketplace table. Development databases only."""
    print("Dropping all tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        print("Creating tables...")
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print("Database is empty and ready. Run `alembic stamp head` from backend/ to mark the schema as current.")


if __name__ == "__main__":
    answer = input("This deletes ALL data. Type 'yes' to continue: ")
    if answer.strip().lower() == "yes":
        asyncio.run(reset())
    else:
        print("Aborted.")
