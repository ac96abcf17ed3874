"""
Encryption utilities for token storage.

Implements AES-256-GCM encryption for single token strings at rest.

SECURITY:
- Uses AES-256-GCM for authenticated encryption
- Each encryption uses a unique random nonce
- Encryption key should be stored securely (env var, secrets manager)
- Key must be exactly 32 bytes (256 bits)

Stored format (one base64 string per token):
    base64(nonce[12] || ciphertext || tag[16])

Usage:
    from token_vault.utils.encryption import TokenCipher

    cipher = TokenCipher.from_key_string(os.environ["TOKEN_ENCRYPTION_KEY"])
    blob = cipher.encrypt("access-token")
    token = cipher.decrypt(blob)
"""

import base64
import binascii
import logging
import secrets

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.exceptions import InvalidTag

logger = logging.getLogger(__name__)


# AES-GCM constants
NONCE_SIZE = 12  # 96 bits, recommended for AES-GCM
TAG_SIZE = 16    # 128 bits, standard for AES-GCM
KEY_SIZE = 32    # 256 bits for AES-256
MIN_BLOB_SIZE = NONCE_SIZE + TAG_SIZE


class CipherError(Exception):
    """Base class for cipher failures."""
    pass


class InvalidKeyError(CipherError):
    """Raised when encryption key is invalid."""
    pass


class EmptyInputError(CipherError):
    """Raised when asked to encrypt an empty string."""
    pass


class MalformedInputError(CipherError):
    """Raised when ciphertext is not valid base64 or is too short."""
    pass


class AuthenticationFailedError(CipherError):
    """Raised when the GCM tag does not verify (wrong key or tampering)."""
    pass


class TokenCipher:
    """
    AES-256-GCM cipher for token strings.

    Stateless apart from the immutable key, so one instance can be shared
    across threads and tasks.

    SECURITY:
    - Key must be 32 bytes (256 bits)
    - A fresh nonce is drawn for every encrypt call
    - Never log the key, plaintext, or ciphertext
    """

    def __init__(self, key: bytes):
        """
        Initialize cipher with encryption key.

        Args:
            key: 32-byte encryption key

        Raises:
            InvalidKeyError: If key is missing or wrong size
        """
        if not key:
            raise InvalidKeyError("Encryption key is required")
        if len(key) != KEY_SIZE:
            raise InvalidKeyError(
                f"Encryption key must be {KEY_SIZE} bytes, got {len(key)}"
            )
        self._aesgcm = AESGCM(key)

    def __repr__(self) -> str:
        return "<TokenCipher(AES-256-GCM)>"

    @classmethod
    def from_key_string(cls, key_string: str) -> "TokenCipher":
        """
        Build a cipher from a configured key string.

        Supports:
        - Base64 encoding
        - Hex encoding
        - Raw UTF-8 (if exactly 32 bytes)
        """
        if not key_string:
            raise InvalidKeyError("Encryption key is required")

        try:
            decoded = base64.b64decode(key_string, validate=True)
            if len(decoded) == KEY_SIZE:
                return cls(decoded)
        except (binascii.Error, ValueError):
            pass

        try:
            decoded = bytes.fromhex(key_string)
            if len(decoded) == KEY_SIZE:
                return cls(decoded)
        except ValueError:
            pass

        raw = key_string.encode("utf-8")
        if len(raw) == KEY_SIZE:
            return cls(raw)

        raise InvalidKeyError(
            f"Could not decode key string. Expected {KEY_SIZE} bytes after decoding."
        )

    @staticmethod
    def generate_key() -> bytes:
        """Generate a new random 256-bit encryption key."""
        return secrets.token_bytes(KEY_SIZE)

    @staticmethod
    def generate_key_string() -> str:
        """Generate a new random encryption key as base64 string."""
        return base64.b64encode(secrets.token_bytes(KEY_SIZE)).decode("utf-8")

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a token string.

        Args:
            plaintext: Token to encrypt (non-empty)

        Returns:
            base64(nonce || ciphertext || tag)

        Raises:
            EmptyInputError: If plaintext is empty
        """
        if not plaintext:
            raise EmptyInputError("Cannot encrypt empty plaintext")

        nonce = secrets.token_bytes(NONCE_SIZE)
        # AESGCM appends the tag to the ciphertext
        sealed = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a blob produced by encrypt().

        Raises:
            MalformedInputError: Not base64, or shorter than nonce + tag
            AuthenticationFailedError: Tag verification failed
        """
        if not ciphertext:
            raise MalformedInputError("Ciphertext is empty")

        try:
            blob = base64.b64decode(ciphertext, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedInputError("Ciphertext is not valid base64") from e

        if len(blob) < MIN_BLOB_SIZE:
            raise MalformedInputError(
                f"Ciphertext too short: {len(blob)} bytes, need at least {MIN_BLOB_SIZE}"
            )

        nonce, sealed = blob[:NONCE_SIZE], blob[NONCE_SIZE:]
        try:
            plaintext = self._aesgcm.decrypt(nonce, sealed, None)
        except InvalidTag as e:
            logger.warning("Token decryption failed - authentication tag mismatch")
            raise AuthenticationFailedError(
                "Decryption failed - data may be tampered or key is wrong"
            ) from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedInputError("Decrypted token is not valid UTF-8") from e
