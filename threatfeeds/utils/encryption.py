"""Fernet encryption for feed credentials stored at rest."""

import base64
import hashlib

from cryptography.fernet import Fernet


def derive_key(secret: str) -> bytes:
    """Derive a Fernet key from the application secret."""
    key = hashlib.sha256(secret.encode()).digest()
    return base64.urlsafe_b64encode(key)


def encrypt_value(value: str, secret: str) -> str:
    f = Fernet(derive_key(secret))
    return f.encrypt(value.encode()).decode()


def decrypt_value(encrypted: str, secret: str) -> str:
    """Raises ``cryptography.fernet.InvalidToken`` if the secret has changed."""
    f = Fernet(derive_key(secret))
    return f.decrypt(encrypted.encode()).decode()
