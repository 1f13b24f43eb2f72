"""bcrypt password hashing, run off the event loop."""

import asyncio

import bcrypt

MAX_PASSWORD_BYTES = 72


def _hash(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def _verify(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


async def hash_password(password: str) -> str:
    return await asyncio.to_thread(_hash, password)


async def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return await asyncio.to_thread(_verify, password, password_hash)
