"""
Tests for the credential cipher.

Tests AES-256-GCM sealing of Xero token bundles:
- Round trip
- Tamper detection on ciphertext, iv and tag
- Wrong key detection
- Key validation (ConfigError)
"""

import base64
import json

import pytest

from prodit.credentials.bundle import TokenBundle
from prodit.credentials.cipher import (
    IV_SIZE,
    KEY_SIZE,
    TAG_SIZE,
    CredentialCipher,
    SealedBundle,
    decode_key,
    open_bundle,
    seal,
)
from prodit.credentials.errors import ConfigError, IntegrityError


def _flip_first_byte(value: str) -> str:
    raw = bytearray(base64.b64decode(value))
    raw[0] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


class TestCredentialCipher:
    """Tests for CredentialCipher."""

    @pytest.fixture
    def bundle(self) -> TokenBundle:
        return TokenBundle(
            access_token="eyJhbGciOi.access",
            refresh_token="refresh-abc",
            expires_in=1800,
            token_type="Bearer",
            extra={"scope": "openid offline_access"},
        )

    def test_round_trip(self, cipher, bundle):
        """Opening a sealed bundle returns the same bundle."""
        assert cipher.open(cipher.seal(bundle)) == bundle

    def test_sealed_components_are_base64_with_expected_sizes(self, cipher, bundle):
        sealed = cipher.seal(bundle)

        assert len(base64.b64decode(sealed.iv)) == IV_SIZE
        assert len(base64.b64decode(sealed.tag)) == TAG_SIZE
        assert b"refresh-abc" not in base64.b64decode(sealed.ciphertext)

    def test_fresh_iv_per_seal(self, cipher, bundle):
        """Sealing the same bundle twice yields different iv and ciphertext."""
        first = cipher.seal(bundle)
        second = cipher.seal(bundle)

        assert first.iv != second.iv
        assert first.ciphertext != second.ciphertext

    def test_tampered_ciphertext_fails(self, cipher, bundle):
        sealed = cipher.seal(bundle)
        tampered = SealedBundle(_flip_first_byte(sealed.ciphertext), sealed.iv, sealed.tag)

        with pytest.raises(IntegrityError):
            cipher.open(tampered)

    def test_tampered_iv_fails(self, cipher, bundle):
        sealed = cipher.seal(bundle)
        tampered = SealedBundle(sealed.ciphertext, _flip_first_byte(sealed.iv), sealed.tag)

        with pytest.raises(IntegrityError):
            cipher.open(tampered)

    def test_tampered_tag_fails(self, cipher, bundle):
        sealed = cipher.seal(bundle)
        tampered = SealedBundle(sealed.ciphertext, sealed.iv, _flip_first_byte(sealed.tag))

        with pytest.raises(IntegrityError):
            cipher.open(tampered)

    def test_wrong_key_fails(self, cipher, bundle):
        sealed = cipher.seal(bundle)
        other = CredentialCipher.from_base64(CredentialCipher.generate_key_string())

        with pytest.raises(IntegrityError):
            other.open(sealed)

    def test_malformed_base64_fails_as_integrity_error(self, cipher, bundle):
        sealed = cipher.seal(bundle)

        with pytest.raises(IntegrityError):
            cipher.open(SealedBundle("not base64!!", sealed.iv, sealed.tag))

    def test_truncated_tag_fails(self, cipher, bundle):
        sealed = cipher.seal(bundle)
        short_tag = base64.b64encode(base64.b64decode(sealed.tag)[:8]).decode("ascii")

        with pytest.raises(IntegrityError):
            cipher.open(SealedBundle(sealed.ciphertext, sealed.iv, short_tag))

    def test_non_bundle_plaintext_fails(self, cipher):
        """A validly sealed payload that is not a token bundle is rejected."""
        from cryptography.hazmat.primitives.ciphers.aead import AESGCM

        key = b"k" * KEY_SIZE
        iv = b"i" * IV_SIZE
        blob = AESGCM(key).encrypt(iv, json.dumps({"hello": "world"}).encode(), None)
        sealed = SealedBundle(
            ciphertext=base64.b64encode(blob[:-TAG_SIZE]).decode(),
            iv=base64.b64encode(iv).decode(),
            tag=base64.b64encode(blob[-TAG_SIZE:]).decode(),
        )

        with pytest.raises(IntegrityError, match="not a valid token bundle"):
            CredentialCipher(key).open(sealed)

    def test_repr_hides_key(self, cipher):
        assert "redacted" in repr(cipher)

    def test_functional_helpers(self, bundle):
        key = b"x" * KEY_SIZE
        assert open_bundle(seal(bundle, key), key) == bundle


class TestKeyValidation:
    """Tests for encryption key loading."""

    def test_missing_key_raises_config_error(self):
        with pytest.raises(ConfigError, match="not configured"):
            CredentialCipher.from_base64(None)

    def test_empty_key_raises_config_error(self):
        with pytest.raises(ConfigError):
            CredentialCipher(b"")

    def test_non_base64_key_raises_config_error(self):
        with pytest.raises(ConfigError, match="base64"):
            decode_key("%%% not a key %%%")

    def test_wrong_length_key_raises_config_error(self):
        short = base64.b64encode(b"too-short").decode()
        with pytest.raises(ConfigError, match="32 bytes"):
            CredentialCipher.from_base64(short)

    def test_generated_key_is_valid(self):
        key_string = CredentialCipher.generate_key_string()
        assert len(decode_key(key_string)) == KEY_SIZE
