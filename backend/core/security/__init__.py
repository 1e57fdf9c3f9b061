"""
Security utilities for authentication and authorization.
"""

from .api_keys import api_key_preview, generate_api_key, hash_api_key, looks_like_api_key
from .password import PasswordHasher, password_hasher
from .tokens import TokenPayload, TokenService

__all__ = [
    "PasswordHasher",
    "password_hasher",
    "TokenService",
    "TokenPayload",
    "generate_api_key",
    "hash_api_key",
    "api_key_preview",
    "looks_like_api_key",
]
