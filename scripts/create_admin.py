"""Create an admin or peer specialist account in the database.

Usage:
    python -m scripts.create_admin --email admin@test.com --password Admin1234!
    python -m scripts.create_admin --email peer@test.com --password Peer1234! \
        --role specialist --slots 2
"""

import argparse
import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from peer_chat.core.database import Base, async_session_factory, engine
from peer_chat.core.security import hash_password
from peer_chat.models.peer_specialist import PeerSpecialist
from peer_chat.models.user import User


async def create_account(
    email: str, password: str, username: str, role: str, slots: int
) -> None:
    """Create the account (and specialist profile) if the email is free."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        session: AsyncSession
        result = await session.execute(select(User).where(User.email == email))
        existing = result.scalar_one_or_none()
        if existing:
            print(f"User with email '{email}' already exists (id={existing.id}).")
            return

        hashed = await hash_password(password)
        user = User(
            email=email,
            hashed_password=hashed,
            username=username,
            role=role,
        )
        session.add(user)
        await session.flush()
        if role == "specialist":
            session.add(
                PeerSpecialist(
                    user_id=user.id,
                    display_name=username,
                    max_concurrent_sessions=slots,
                )
            )
        await session.commit()
        print(f"{role.capitalize()} account created: {email} (id={user.id})")

    await engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create an admin or specialist account")
    parser.add_argument("--email", required=True, help="Account email")
    parser.add_argument("--password", required=True, help="Account password")
    parser.add_argument("--username", default="admin", help="Display username")
    parser.add_argument(
        "--role", choices=("admin", "specialist"), default="admin", help="Account role"
    )
    parser.add_argument(
        "--slots", type=int, default=3, help="Concurrent session slots (specialists)"
    )
    args = parser.parse_args()

    asyncio.run(
        create_account(args.email, args.password, args.username, args.role, args.slots)
    )


if __name__ == "__main__":
    main()
