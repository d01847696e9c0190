"""
Credential cipher for sealing Xero token bundles at rest.

Implements AES-256-GCM authenticated encryption.

SECURITY:
- Each seal uses a fresh random 96-bit iv
- The 128-bit authentication tag is stored separately from the ciphertext
- Key must be exactly 32 bytes (base64 in PRODIT_TOKEN_KEY)
- The key is never logged or included in error messages
- A failed tag check is never retried and never falls back to plaintext

Usage:
    cipher = CredentialCipher.from_base64(settings.token_key)

    sealed = cipher.seal(bundle)
    bundle = cipher.open(sealed)
"""

import base64
import binascii
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from prodit.credentials.bundle import TokenBundle
from prodit.credentials.errors import ConfigError, IntegrityError

logger = logging.getLogger(__name__)


# AES-GCM constants
IV_SIZE = 12     # 96 bits, recommended for AES-GCM
TAG_SIZE = 16    # 128 bits, standard for AES-GCM
KEY_SIZE = 32    # 256 bits for AES-256


@dataclass(frozen=True)
class SealedBundle:
    """Encrypted token bundle, every component base64 text for storage."""
    ciphertext: str
    iv: str
    tag: str

    def to_dict(self) -> Dict[str, str]:
        return {"ciphertext": self.ciphertext, "iv": self.iv, "tag": self.tag}


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _unb64(text: str) -> bytes:
    return base64.b64decode(text.encode("ascii"), validate=True)


def decode_key(key_string: Optional[str]) -> bytes:
    """
    Decode a base64 encryption key.

    Raises:
        ConfigError: If the key is missing, not base64, or not 32 bytes
    """
    if not key_string:
        raise ConfigError("Encryption key not configured (PRODIT_TOKEN_KEY)")
    try:
        key = _unb64(key_string.strip())
    except (binascii.Error, ValueError):
        raise ConfigError("Encryption key must be base64 encoded (PRODIT_TOKEN_KEY)") from None
    if len(key) != KEY_SIZE:
        raise ConfigError(
            f"Invalid encryption key length. Must be {KEY_SIZE} bytes (base64 encoded)."
        )
    return key


class CredentialCipher:
    """
    AES-256-GCM cipher for token bundles.

    Constructed once at startup and shared read-only by every request.
    """

    def __init__(self, key: Optional[bytes]):
        """
        Args:
            key: 32-byte encryption key

        Raises:
            ConfigError: If key is missing or wrong size
        """
        if not key:
            raise ConfigError("Encryption key not configured (PRODIT_TOKEN_KEY)")
        if len(key) != KEY_SIZE:
            raise ConfigError(
                f"Invalid encryption key length. Must be {KEY_SIZE} bytes (base64 encoded)."
            )
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_base64(cls, key_string: Optional[str]) -> "CredentialCipher":
        return cls(decode_key(key_string))

    def __repr__(self) -> str:
        return "CredentialCipher(key=<redacted>)"

    @staticmethod
    def generate_key_string() -> str:
        """Generate a new random key suitable for PRODIT_TOKEN_KEY."""
        return _b64(secrets.token_bytes(KEY_SIZE))

    def seal(self, bundle: TokenBundle) -> SealedBundle:
        """
        Encrypt a token bundle.

        Returns:
            SealedBundle with base64 ciphertext, iv and tag
        """
        plaintext = json.dumps(bundle.to_dict()).encode("utf-8")
        iv = secrets.token_bytes(IV_SIZE)

        # AESGCM.encrypt returns ciphertext + tag concatenated
        ciphertext_with_tag = self._aesgcm.encrypt(iv, plaintext, None)

        return SealedBundle(
            ciphertext=_b64(ciphertext_with_tag[:-TAG_SIZE]),
            iv=_b64(iv),
            tag=_b64(ciphertext_with_tag[-TAG_SIZE:]),
        )

    def open(self, sealed: SealedBundle) -> TokenBundle:
        """
        Verify and decrypt a sealed bundle.

        Raises:
            IntegrityError: If the tag does not verify (tampered data or
                wrong key) or the components are malformed
        """
        try:
            ciphertext = _unb64(sealed.ciphertext)
            iv = _unb64(sealed.iv)
            tag = _unb64(sealed.tag)
        except (binascii.Error, ValueError, AttributeError):
            logger.error("Credential decryption failed: malformed sealed bundle")
            raise IntegrityError("Stored credential is malformed") from None

        if len(iv) != IV_SIZE or len(tag) != TAG_SIZE:
            logger.error("Credential decryption failed: iv or tag has wrong length")
            raise IntegrityError()

        try:
            plaintext = self._aesgcm.decrypt(iv, ciphertext + tag, None)
        except InvalidTag:
            logger.error("Credential decryption failed: authentication tag mismatch")
            raise IntegrityError(
                "Stored credential failed integrity verification. "
                "It may have been tampered with or the encryption key changed."
            ) from None

        try:
            return TokenBundle.from_dict(json.loads(plaintext.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.error("Credential decryption failed: decrypted payload is not a token bundle")
            raise IntegrityError("Stored credential is not a valid token bundle") from None


def seal(bundle: TokenBundle, key: Optional[bytes]) -> SealedBundle:
    """Functional form of CredentialCipher.seal."""
    return CredentialCipher(key).seal(bundle)


def open_bundle(sealed: SealedBundle, key: Optional[bytes]) -> TokenBundle:
    """Functional form of CredentialCipher.open."""
    return CredentialCipher(key).open(sealed)
