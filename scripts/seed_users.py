"""Seed demo developers and print a bearer token for each.

Usage: python -m scripts.seed_users
"""
import asyncio
import sys
sys.path.insert(0, ".")

from sqlalchemy import select
from devtinder.database import async_session_factory
from devtinder.models.user import User
from devtinder.utils.tokens import issue_access_token


DEMO_USERS = [
    {
        "email": "ada@devtinder.dev",
        "name": "Ada",
        "bio": "Compilers by day, synths by night.",
        "skills": ["rust", "llvm", "python"],
    },
    {
        "email": "grace@devtinder.dev",
        "name": "Grace",
        "bio": "Looking for someone to pair on a COBOL-to-Go migration.",
        "skills": ["go", "cobol", "postgres"],
    },
    {
        "email": "linus@devtinder.dev",
        "name": "Linus",
        "bio": "Will review your patches. Harshly.",
        "skills": ["c", "git", "linux"],
    },
    {
        "email": "margaret@devtinder.dev",
        "name": "Margaret",
        "bio": "Flight software, formal methods, long walks.",
        "skills": ["ada", "tla+", "python"],
    },
]


async def seed():
    async with async_session_factory() as session:
        users = []
        for data in DEMO_USERS:
            existing = await session.execute(
                select(User).where(User.email == data["email"])
            )
            user = existing.scalar_one_or_none()
            if user is None:
                user = User(**data)
                session.add(user)
                print(f"  Seeded user {data['email']}")
            else:
                print(f"  User {data['email']} already exists, skipping.")
            users.append(user)
        await session.commit()

        print("\nAccess tokens:")
        for user in users:
            print(f"  {user.email}: {issue_access_token(user.id)}")
    print("Done seeding users.")


if __name__ == "__main__":
    asyncio.run(seed())
