"""
Password hashing helpers.

bcrypt is CPU-bound, so the async wrappers run it in a worker thread to keep
the event loop responsive during seeding.
"""

import asyncio

import bcrypt


BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def hash_password(password: str, rounds: int = 10) -> str:
    """Hash a plaintext password with a fresh salt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Check a plaintext password against a stored hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash
        return False


def is_password_hash(value: object) -> bool:
    """True for a complete bcrypt hash string."""
    return isinstance(value, str) and value.startswith(BCRYPT_PREFIXES) and len(value) == 60


async def hash_password_async(password: str, rounds: int = 10) -> str:
    return await asyncio.to_thread(hash_password, password, rounds)
