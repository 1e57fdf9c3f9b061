"""
Password hashing utilities using bcrypt.
"""

from passlib.context import CryptContext


class PasswordHasher:
    """Password hashing and verification using bcrypt."""

    def __init__(self, rounds: int = 12):
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, password: str) -> str:
        """Hash a plain text password."""
        return self._context.hash(password)

    def verify(self, plain_password: str, hashed_password: str | None) -> bool:
        """
        Verify a password against a hash.

        Accounts created through an external identity provider have no
        password hash and never verify.
        """
        if not hashed_password:
            return False
        return self._context.verify(plain_password, hashed_password)


# Singleton instance
password_hasher = PasswordHasher()
