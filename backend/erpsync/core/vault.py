"""Credential vault: AES-256-GCM encryption for secrets at rest.

Stored form is ``v1:<base64(nonce || ciphertext || tag)>``.  Any failure
raises :class:`VaultError`; callers never fall back to storing plaintext.
"""

import base64
import binascii
import json
import logging
import os
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from erpsync.core.config import settings

logger = logging.getLogger(__name__)

CIPHERTEXT_PREFIX = "v1:"
NONCE_SIZE = 12


class VaultError(Exception):
    """Raised when encryption or decryption fails."""


def is_ciphertext(value: str | None) -> bool:
    """True when *value* looks like vault output (used to reject plaintext writes)."""
    return isinstance(value, str) and value.startswith(CIPHERTEXT_PREFIX)


class CredentialVault:
    """Encrypts and decrypts secrets with a single 256-bit key."""

    def __init__(self, key_hex: str | None = None):
        key_hex = settings.CREDENTIAL_ENCRYPTION_KEY if key_hex is None else key_hex
        if not key_hex:
            raise VaultError("CREDENTIAL_ENCRYPTION_KEY is not configured")
        try:
            key = bytes.fromhex(key_hex)
        except ValueError as exc:
            raise VaultError("CREDENTIAL_ENCRYPTION_KEY must be a hex string") from exc
        if len(key) != 32:
            raise VaultError(
                f"CREDENTIAL_ENCRYPTION_KEY must be 32 bytes (64 hex chars), got {len(key)} bytes"
            )
        self._aesgcm = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        if not isinstance(plaintext, str):
            raise VaultError("Only strings can be encrypted")
        nonce = os.urandom(NONCE_SIZE)
        try:
            sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        except Exception as exc:  # noqa: BLE001
            logger.error("Encryption failed: %s", type(exc).__name__)
            raise VaultError("Failed to encrypt secret") from exc
        return CIPHERTEXT_PREFIX + base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        if not is_ciphertext(ciphertext):
            raise VaultError("Value is not vault ciphertext")
        try:
            raw = base64.b64decode(ciphertext[len(CIPHERTEXT_PREFIX) :], validate=True)
        except (binascii.Error, ValueError) as exc:
            raise VaultError("Ciphertext is not valid base64") from exc
        if len(raw) <= NONCE_SIZE:
            raise VaultError("Ciphertext is too short")
        try:
            plaintext = self._aesgcm.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
        except InvalidTag as exc:
            logger.error("Decryption failed: authentication tag mismatch")
            raise VaultError("Ciphertext was tampered with or the key is wrong") from exc
        return plaintext.decode("utf-8")

    def encrypt_json(self, value: dict[str, Any]) -> str:
        return self.encrypt(json.dumps(value, sort_keys=True))

    def decrypt_json(self, ciphertext: str) -> dict[str, Any]:
        try:
            value = json.loads(self.decrypt(ciphertext))
        except json.JSONDecodeError as exc:
            raise VaultError("Decrypted value is not valid JSON") from exc
        if not isinstance(value, dict):
            raise VaultError("Decrypted value is not a JSON object")
        return value

    def encrypt_optional(self, plaintext: str | None) -> str | None:
        return None if plaintext in (None, "") else self.encrypt(plaintext)  # type: ignore[arg-type]

    def decrypt_optional(self, ciphertext: str | None) -> str | None:
        return None if ciphertext is None else self.decrypt(ciphertext)


def get_vault() -> CredentialVault:
    """FastAPI dependency / factory; reads the key from settings on each call."""
    return CredentialVault()
