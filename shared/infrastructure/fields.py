"""
Encrypted model field.

Values are encrypted before they reach the database and decrypted on
load. Rows written with a rotated-away key come back as an empty string
and a warning is logged.
"""

import logging

from cryptography.fernet import InvalidToken
from django.db import models

from .encryption import decrypt_string, encrypt_string

logger = logging.getLogger(__name__)


class EncryptedTextField(models.TextField):
    description = "Fernet encrypted text"

    def from_db_value(self, value, expression, connection):
        if value is None:
            return value
        try:
            return decrypt_string(value)
        except InvalidToken:
            logger.warning(f"Could not decrypt {self.model.__name__}.{self.name}; key rotated?")
            return ''

    def get_prep_value(self, value):
        if value is None or value == '':
            return ''
        return encrypt_string(str(value))

    def to_python(self, value):
        if value is None:
            return value
        return str(value)
