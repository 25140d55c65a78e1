"""Encryption helpers for tenant commerce credentials stored at rest."""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from cartpilot.core.config import settings
from cartpilot.core.exceptions import TenantLookupError


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    """Get Fernet instance from the encryption key setting.

    Derives a valid 32-byte Fernet key from the config encryption_key
    using SHA-256, then base64-encodes it.

    Note: Changing encryption_key will make previously stored Shopify
    tokens undecryptable.
    """
    key_bytes = hashlib.sha256(settings.encryption_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def encrypt_token(token: str) -> str:
    """Encrypt a token string."""
    return _get_fernet().encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    """Decrypt an encrypted token string."""
    try:
        return _get_fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken as e:
        raise TenantLookupError("Stored commerce token cannot be decrypted") from e


def decrypt_optional(encrypted: str | None) -> str | None:
    """Decrypt a nullable column value; blank values map to None."""
    if not encrypted:
        return None
    return decrypt_token(encrypted)
