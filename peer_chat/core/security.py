"""Password hashing utilities using bcrypt."""

import asyncio
from concurrent.futures import ThreadPoolExecutor

import bcrypt

BCRYPT_ROUNDS = 12

_executor = ThreadPoolExecutor(max_workers=4)

# Compared against on unknown emails so login timing does not leak account existence.
DUMMY_HASH = bcrypt.hashpw(b"dummy", bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


async def hash_password(password: str) -> str:
    """Hash a password using bcrypt off the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        _executor,
        lambda: bcrypt.hashpw(
            password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
        ).decode(),
    )


async def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        _executor,
        lambda: bcrypt.checkpw(plain.encode(), hashed.encode()),
    )
