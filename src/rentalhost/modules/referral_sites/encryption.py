"""AES-256-GCM encryption for stored extranet passwords.

Ciphertexts are hex strings laid out as ``salt(64) + iv(16) + tag(16) + data``.
The salt is random padding kept for compatibility with existing rows; the key
itself comes from ``ENCRYPTION_KEY``.
"""

from __future__ import annotations

import logging
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from rentalhost.config import get_env, is_production
from rentalhost.exceptions import EncryptionError

logger = logging.getLogger(__name__)

IV_LENGTH = 16
SALT_LENGTH = 64
TAG_LENGTH = 16
KEY_LENGTH = 32

_DEV_KEY = "default-dev-key-change-in-production"
_HEX_KEY = re.compile(r"[0-9a-fA-F]{64}")


def _derive(secret: str) -> bytes:
    kdf = Scrypt(salt=b"salt", length=KEY_LENGTH, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode())


def get_encryption_key() -> bytes:
    """Key bytes from ``ENCRYPTION_KEY``: 64 hex chars are used as-is, anything else goes through scrypt."""
    key = get_env("ENCRYPTION_KEY")
    if not key:
        if is_production():
            raise EncryptionError("ENCRYPTION_KEY environment variable is required in production")
        logger.warning("Using default encryption key. Set ENCRYPTION_KEY for production!")
        return _derive(_DEV_KEY)
    if _HEX_KEY.fullmatch(key):
        return bytes.fromhex(key)
    return _derive(key)


def encrypt(plaintext: str | None) -> str:
    if not plaintext:
        return ""
    key = get_encryption_key()
    iv = os.urandom(IV_LENGTH)
    salt = os.urandom(SALT_LENGTH)
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    # AESGCM appends the tag; stored layout puts it before the data
    data, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return (salt + iv + tag + data).hex()


def decrypt(encrypted_hex: str | None) -> str:
    if not encrypted_hex:
        return ""
    key = get_encryption_key()
    try:
        combined = bytes.fromhex(encrypted_hex)
    except ValueError as exc:
        raise EncryptionError("Failed to decrypt data - data may be corrupted or key may be incorrect") from exc

    offset = SALT_LENGTH
    iv = combined[offset:offset + IV_LENGTH]
    offset += IV_LENGTH
    tag = combined[offset:offset + TAG_LENGTH]
    offset += TAG_LENGTH
    data = combined[offset:]
    if len(iv) != IV_LENGTH or len(tag) != TAG_LENGTH:
        raise EncryptionError("Failed to decrypt data - data may be corrupted or key may be incorrect")
    try:
        return AESGCM(key).decrypt(iv, data + tag, None).decode("utf-8")
    except (InvalidTag, UnicodeDecodeError) as exc:
        raise EncryptionError("Failed to decrypt data - data may be corrupted or key may be incorrect") from exc


def obfuscate(value: str | None, length: int = 8) -> str:
    """Mask a secret for display."""
    if not value:
        return ""
    return "•" * min(length, 12)
