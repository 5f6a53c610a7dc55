"""
Credential cipher for connection strings at rest.

Connection strings are sealed with AES-256-GCM. Each call draws a fresh
random nonce, and the ciphertext is stored as ``nonce:tag:payload`` with every
segment hex encoded, so decryption needs nothing but the key.
"""

import logging
import os
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from leaveadmin.core.exceptions import ConfigurationError, CredentialDecryptionError

logger = logging.getLogger(__name__)

KEY_SIZE_BYTES = 32
NONCE_SIZE_BYTES = 12
TAG_SIZE_BYTES = 16


def generate_key() -> str:
    """Return a new hex encoded AES-256 key suitable for ``DB_ENCRYPTION_KEY``."""
    return secrets.token_hex(KEY_SIZE_BYTES)


def mask_connection_string(connection_string: str) -> str:
    """Render a connection URL with its password hidden."""
    try:
        return make_url(connection_string).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparseable connection string>"


class CredentialCipher:
    """AES-256-GCM cipher for connection strings."""

    def __init__(self, key_hex: str | None = None):
        """
        Initialize the cipher.

        Args:
            key_hex: Hex encoded 32-byte key. When omitted an ephemeral key is
                generated and anything encrypted with it is lost on restart.

        Raises:
            ConfigurationError: If the key is not 32 bytes of valid hex
        """
        if key_hex:
            try:
                key = bytes.fromhex(key_hex)
            except ValueError as e:
                raise ConfigurationError("DB encryption key must be hex encoded") from e
            if len(key) != KEY_SIZE_BYTES:
                msg = f"DB encryption key must be {KEY_SIZE_BYTES} bytes, got {len(key)}"
                raise ConfigurationError(msg)
            self._is_ephemeral = False
        else:
            key = os.urandom(KEY_SIZE_BYTES)
            self._is_ephemeral = True
            logger.warning(
                "No DB encryption key configured; using an EPHEMERAL key. "
                "Stored connection strings will be unreadable after a restart"
            )

        self._aesgcm = AESGCM(key)

    @property
    def is_ephemeral(self) -> bool:
        """True when the key was generated for this process only."""
        return self._is_ephemeral

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a connection string into ``nonce:tag:payload`` hex form."""
        nonce = os.urandom(NONCE_SIZE_BYTES)
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        payload, tag = sealed[:-TAG_SIZE_BYTES], sealed[-TAG_SIZE_BYTES:]
        return f"{nonce.hex()}:{tag.hex()}:{payload.hex()}"

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a value produced by ``encrypt``.

        Raises:
            CredentialDecryptionError: If the value is malformed, was encrypted
                with another key, or has been tampered with
        """
        parts = ciphertext.split(":")
        if len(parts) != 3:
            raise CredentialDecryptionError("Invalid encrypted string format")

        try:
            nonce, tag, payload = (bytes.fromhex(part) for part in parts)
        except ValueError as e:
            raise CredentialDecryptionError("Encrypted string is not valid hex") from e

        if len(nonce) != NONCE_SIZE_BYTES or len(tag) != TAG_SIZE_BYTES:
            raise CredentialDecryptionError("Encrypted string has invalid nonce or tag length")

        try:
            plaintext = self._aesgcm.decrypt(nonce, payload + tag, None)
        except InvalidTag as e:
            raise CredentialDecryptionError(
                "Failed to decrypt connection string: authentication failed"
            ) from e

        return plaintext.decode("utf-8")
