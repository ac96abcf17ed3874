"""
Unit tests for the AES-256-GCM token cipher.

Tests cover:
- Encryption/decryption round-trip
- Nonce uniqueness and blob layout
- Tamper detection
- Key validation and decoding
"""

import base64

import pytest

from token_vault.utils.encryption import (
    TokenCipher,
    CipherError,
    InvalidKeyError,
    EmptyInputError,
    MalformedInputError,
    AuthenticationFailedError,
    KEY_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def key():
    """Generate a test encryption key."""
    return TokenCipher.generate_key()


@pytest.fixture
def token_cipher(key):
    return TokenCipher(key)


# =============================================================================
# Round-trip
# =============================================================================

class TestRoundTrip:

    @pytest.mark.parametrize("plaintext", [
        "a",
        "access-token-value",
        "token with spaces and symbols !@#$%^&*()",
        "ünïcödé-tøken-✓",
        "x" * 10_000,
    ])
    def test_decrypt_returns_original(self, token_cipher, plaintext):
        """decrypt(encrypt(s)) == s for non-empty strings."""
        assert token_cipher.decrypt(token_cipher.encrypt(plaintext)) == plaintext

    def test_each_encryption_uses_fresh_nonce(self, token_cipher):
        """Same plaintext encrypts to different blobs."""
        first = token_cipher.encrypt("same-token")
        second = token_cipher.encrypt("same-token")

        assert first != second
        assert base64.b64decode(first)[:NONCE_SIZE] != base64.b64decode(second)[:NONCE_SIZE]

    def test_blob_layout_is_nonce_ciphertext_tag(self, token_cipher):
        """Blob is base64(nonce || ciphertext || tag)."""
        plaintext = "layout-check"
        blob = base64.b64decode(token_cipher.encrypt(plaintext))

        assert len(blob) == NONCE_SIZE + len(plaintext.encode("utf-8")) + TAG_SIZE

    def test_output_is_printable_and_hides_plaintext(self, token_cipher):
        blob = token_cipher.encrypt("visible-secret")

        assert blob.isascii()
        assert "visible-secret" not in blob

    def test_shared_key_instances_interoperate(self, key):
        """Cipher is stateless apart from the key."""
        blob = TokenCipher(key).encrypt("portable")
        assert TokenCipher(key).decrypt(blob) == "portable"


# =============================================================================
# Tamper detection and malformed input
# =============================================================================

class TestTamperDetection:

    def test_flipping_any_byte_fails_authentication(self, token_cipher):
        """Every single-byte modification is rejected, never altered plaintext."""
        blob = bytearray(base64.b64decode(token_cipher.encrypt("tamper-target")))

        for index in range(len(blob)):
            tampered = bytearray(blob)
            tampered[index] ^= 0x01
            encoded = base64.b64encode(bytes(tampered)).decode("ascii")

            with pytest.raises(AuthenticationFailedError):
                token_cipher.decrypt(encoded)

    def test_wrong_key_fails_authentication(self, token_cipher):
        blob = token_cipher.encrypt("keyed")
        other = TokenCipher(TokenCipher.generate_key())

        with pytest.raises(AuthenticationFailedError):
            other.decrypt(blob)

    def test_blob_shorter_than_nonce_and_tag_is_malformed(self, token_cipher):
        short = base64.b64encode(b"\x00" * (NONCE_SIZE + TAG_SIZE - 1)).decode("ascii")

        with pytest.raises(MalformedInputError):
            token_cipher.decrypt(short)

    def test_non_base64_is_malformed(self, token_cipher):
        with pytest.raises(MalformedInputError):
            token_cipher.decrypt("not base64 at all!!")

    def test_empty_ciphertext_is_malformed(self, token_cipher):
        with pytest.raises(MalformedInputError):
            token_cipher.decrypt("")

    def test_errors_share_base_class(self, token_cipher):
        with pytest.raises(CipherError):
            token_cipher.decrypt("")


# =============================================================================
# Input and key validation
# =============================================================================

class TestValidation:

    def test_empty_plaintext_rejected(self, token_cipher):
        with pytest.raises(EmptyInputError):
            token_cipher.encrypt("")

    @pytest.mark.parametrize("length", [0, 16, 31, 33, 64])
    def test_key_must_be_32_bytes(self, length):
        with pytest.raises(InvalidKeyError):
            TokenCipher(b"k" * length)

    def test_from_key_string_base64(self, key):
        key_string = base64.b64encode(key).decode("ascii")
        blob = TokenCipher(key).encrypt("b64")

        assert TokenCipher.from_key_string(key_string).decrypt(blob) == "b64"

    def test_from_key_string_hex(self, key):
        blob = TokenCipher(key).encrypt("hex")

        assert TokenCipher.from_key_string(key.hex()).decrypt(blob) == "hex"

    def test_from_key_string_raw_utf8(self):
        raw = "test-credential-encryption-key-3"
        assert len(raw) == KEY_SIZE

        blob = TokenCipher(raw.encode("utf-8")).encrypt("raw")
        assert TokenCipher.from_key_string(raw).decrypt(blob) == "raw"

    @pytest.mark.parametrize("key_string", ["", "too-short", "a" * 50])
    def test_from_key_string_rejects_wrong_sizes(self, key_string):
        with pytest.raises(InvalidKeyError):
            TokenCipher.from_key_string(key_string)

    def test_generate_key_string_is_usable(self):
        cipher = TokenCipher.from_key_string(TokenCipher.generate_key_string())
        assert cipher.decrypt(cipher.encrypt("generated")) == "generated"

    def test_repr_does_not_expose_key(self, key, token_cipher):
        assert key.hex() not in repr(token_cipher)
        assert base64.b64encode(key).decode("ascii") not in repr(token_cipher)
