"""
Credential encryption boundary.

Wraps TokenCipher so cipher failures surface as lifecycle errors.

SECURITY REQUIREMENTS:
- Inputs and outputs are never logged
- No plaintext tokens outside process memory
- Key validated at start-up (fail fast)

Usage:
    from token_vault.credentials.encryption import encrypt_token, decrypt_token

    encrypted = encrypt_token(cipher, access_token, field="access_token")
    plaintext = decrypt_token(cipher, encrypted, field="access_token")
"""

import logging

from token_vault.config.settings import ConfigurationError
from token_vault.credentials.errors import DecodeFailureError, EncryptionFailureError
from token_vault.utils.encryption import CipherError, InvalidKeyError, TokenCipher

logger = logging.getLogger(__name__)


def build_cipher(key_string: str) -> TokenCipher:
    """
    Build the process-wide cipher from the configured key.

    Call during application startup to fail fast on a bad key.

    Raises:
        ConfigurationError: If the key is missing or not 32 bytes
    """
    try:
        cipher = TokenCipher.from_key_string(key_string)
    except InvalidKeyError as e:
        raise ConfigurationError(f"TOKEN_ENCRYPTION_KEY is invalid: {e}") from e

    logger.info("Credential encryption validated successfully")
    return cipher


def encrypt_token(cipher: TokenCipher, plaintext: str, field: str = "token") -> str:
    """
    Encrypt an OAuth token for storage.

    Raises:
        EncryptionFailureError: If the cipher rejects the input
    """
    try:
        return cipher.encrypt(plaintext)
    except CipherError as e:
        logger.error(
            "Token encryption failed",
            extra={"operation": "encrypt_token", "field": field, "error_type": type(e).__name__}
        )
        raise EncryptionFailureError(f"Failed to encrypt {field}", field=field) from e


def decrypt_token(cipher: TokenCipher, ciphertext: str, field: str = "token") -> str:
    """
    Decrypt a stored OAuth token.

    SECURITY: The returned value must NEVER be logged.

    Raises:
        DecodeFailureError: Token corrupted or encryption key changed
    """
    try:
        return cipher.decrypt(ciphertext)
    except CipherError as e:
        logger.error(
            "Token decryption failed",
            extra={"operation": "decrypt_token", "field": field, "error_type": type(e).__name__}
        )
        raise DecodeFailureError(
            f"Failed to decrypt stored {field}. Token may be corrupted or encryption key changed."
        ) from e
