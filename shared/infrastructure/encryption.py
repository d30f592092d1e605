"""
Encryption utilities

Fernet symmetric encryption for provider payloads kept for manual
review (they may carry payer e-mails, phone numbers or card hints).
"""

import base64
import hashlib

from cryptography.fernet import Fernet
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


def get_fernet() -> Fernet:
    """
    Build a Fernet instance from ``settings.ENCRYPTION_KEY``.

    Any string is accepted; it is stretched to a 32-byte urlsafe key.
    """
    key = getattr(settings, 'ENCRYPTION_KEY', None)
    if not key:
        raise ImproperlyConfigured("ENCRYPTION_KEY is not configured")

    if isinstance(key, str):
        key = base64.urlsafe_b64encode(hashlib.sha256(key.encode()).digest())
    return Fernet(key)


def encrypt_string(plaintext: str) -> str:
    if not plaintext:
        return ''
    return get_fernet().encrypt(plaintext.encode()).decode()


def decrypt_string(token: str) -> str:
    if not token:
        return ''
    return get_fernet().decrypt(token.encode()).decode()
