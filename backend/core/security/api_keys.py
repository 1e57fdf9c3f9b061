"""
API key and webhook secret generation.

Keys are shown to the customer once; only the sha256 digest is stored.
"""

import hashlib
import secrets

API_KEY_PREFIX = "rr_live_"
WEBHOOK_SECRET_PREFIX = "whsec_"


def generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_urlsafe(32)


def hash_api_key(key: str) -> str:
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def api_key_preview(key: str) -> str:
    """Display form such as ``rr_live_AbCd...wXyZ``."""
    body = key[len(API_KEY_PREFIX):] if key.startswith(API_KEY_PREFIX) else key
    return f"{API_KEY_PREFIX}{body[:4]}...{body[-4:]}"


def looks_like_api_key(token: str) -> bool:
    return token.startswith(API_KEY_PREFIX)


def generate_webhook_secret() -> str:
    return WEBHOOK_SECRET_PREFIX + secrets.token_hex(24)
