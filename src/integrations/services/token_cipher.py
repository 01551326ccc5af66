"""Encryption at rest for stored OAuth token blobs."""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..config import MIN_ENCRYPTION_SECRET_LENGTH
from ..errors import DecryptionError

logger = logging.getLogger(__name__)

KEY_LENGTH = 32  # AES-256
NONCE_LENGTH = 12
TAG_LENGTH = 16
KDF_ITERATIONS = 100_000
# Process-wide key; rotating it means redeploying the secret, so the salt is fixed.
KDF_SALT = b"smartpicker:token-store:v1"
ASSOCIATED_DATA = b"token-data"

_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")


class TokenCipher:
    """AES-256-GCM sealing of token payloads as ``base64(nonce || tag || ciphertext)``."""

    def __init__(self, secret: str):
        self._aesgcm = AESGCM(self._derive_key(secret))

    @staticmethod
    def _derive_key(secret: str) -> bytes:
        if not secret:
            raise ValueError("Encryption secret is required. Set AES_SECRET_KEY.")
        if len(secret) < MIN_ENCRYPTION_SECRET_LENGTH:
            raise ValueError(
                f"Encryption secret must be at least {MIN_ENCRYPTION_SECRET_LENGTH} characters long."
            )
        if _HEX_KEY_RE.match(secret):
            return bytes.fromhex(secret)

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA512(),
            length=KEY_LENGTH,
            salt=KDF_SALT,
            iterations=KDF_ITERATIONS,
        )
        return kdf.derive(secret.encode("utf-8"))

    def seal(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_LENGTH)
        # AESGCM appends the tag to the ciphertext
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), ASSOCIATED_DATA)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(nonce + tag + ciphertext).decode("ascii")

    def open(self, blob: str) -> str:
        try:
            combined = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError, AttributeError) as exc:
            raise DecryptionError("Stored token blob is not valid base64") from exc

        if len(combined) < NONCE_LENGTH + TAG_LENGTH:
            raise DecryptionError("Stored token blob is truncated")

        nonce = combined[:NONCE_LENGTH]
        tag = combined[NONCE_LENGTH:NONCE_LENGTH + TAG_LENGTH]
        ciphertext = combined[NONCE_LENGTH + TAG_LENGTH:]

        try:
            plaintext = self._aesgcm.decrypt(nonce, ciphertext + tag, ASSOCIATED_DATA)
        except InvalidTag as exc:
            raise DecryptionError("Stored token blob failed authentication. Check encryption key.") from exc

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("Stored token blob is not UTF-8 text") from exc


def generate_key() -> str:
    """Return a fresh 256-bit key as 64 hex characters, usable directly as AES_SECRET_KEY."""
    return os.urandom(KEY_LENGTH).hex()
