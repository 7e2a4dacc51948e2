"""
Crypto utilities — bcrypt password hashing.

Only bcrypt ($2b$ / $2a$) hashes are accepted. Accounts without a password
hash (invited, not yet activated) can never authenticate.
"""

import bcrypt

BCRYPT_ROUNDS = 12


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt."""
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash or not password_hash.startswith(("$2b$", "$2a$")):
        return False
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        password_hash.encode("utf-8"),
    )
