"""Password hashing (argon2id)"""
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from shop_auth.config import settings

ph = PasswordHasher(
    time_cost=settings.PASSWORD_HASH_TIME_COST,
    memory_cost=settings.PASSWORD_HASH_MEMORY_COST,
)


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time check of ``password`` against a stored hash. Never raises."""
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False
