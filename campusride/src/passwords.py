from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError

passwordHasher = PasswordHasher(encoding="utf-8")


def makePassword(password: str) -> str:
    """Return the Argon2 hash stored in place of a plain-text password."""
    return passwordHasher.hash(password)


def checkPassword(password: str, hashedPassword: str) -> bool:
    """
    Verify a plain-text password against a stored Argon2 hash.

    A stored value that is not an Argon2 hash never matches.
    """
    try:
        return passwordHasher.verify(hashedPassword, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def needsRehash(hashedPassword: str) -> bool:
    """Whether a stored hash was made with outdated Argon2 parameters."""
    return passwordHasher.check_needs_rehash(hashedPassword)
