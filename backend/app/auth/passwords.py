"""Password hashing with bcrypt."""

import bcrypt


def hash_password(password: str) -> str:
    """Return the bcrypt hash of a plain-text password."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Check a password against a stored hash.

    Accounts created through social login have no hash and never match.
    """
    if not hashed_password:
        return False
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
