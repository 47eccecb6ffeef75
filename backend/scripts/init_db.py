"""Create the mirror tables and, optionally, a demo account.

Run inside Docker:
    docker compose exec backend python -m scripts.init_db [--demo]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add backend to path so imports work when run as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

import app.models  # noqa: F401  (registers every table on Base.metadata)
from app.auth.passwords import hash_password
from app.database import Base, async_session_factory, engine
from app.models.user import User

DEMO_USER = {
    "email": "demo@example.com",
    "password": "demo1234",
    "name": "Demo Customer",
}


async def create_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print(f"✅ Created tables: {', '.join(sorted(Base.metadata.tables))}")


async def seed_demo_user() -> None:
    """Create the demo user unless it already exists.

    No Stripe customer is created here; it is linked on the first billing call.
    """
    async with async_session_factory() as session:
        result = await session.execute(select(User).where(User.email == DEMO_USER["email"]))
        if result.scalar_one_or_none() is not None:
            print(f"⚠️  Demo user '{DEMO_USER['email']}' already exists, skipping")
            return

        user = User(
            email=DEMO_USER["email"],
            hashed_password=hash_password(DEMO_USER["password"]),
            name=DEMO_USER["name"],
            is_active=True,
        )
        session.add(user)
        await session.commit()
        print(f"✅ Created demo user: {user.email} / {DEMO_USER['password']} (id={user.id})")


async def main(demo: bool) -> None:
    await create_tables()
    if demo:
        await seed_demo_user()
    await engine.dispose()
    print("🎉 Done! You can now log in at /api/v1/auth/login")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--demo", action="store_true", help="also create the demo user")
    args = parser.parse_args()
    asyncio.run(main(args.demo))
