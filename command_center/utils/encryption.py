"""
OAuth token encryption.

ServiceM8 access and refresh tokens are encrypted with Fernet before they are
written to the oauth_tokens table. Without ENCRYPTION_KEY tokens are stored
as-is and a warning is logged at startup.
"""

import logging
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken
from config.settings import settings

logger = logging.getLogger(__name__)


class TokenEncryption:
    """Encrypts and decrypts stored OAuth tokens."""

    def __init__(self, key: Optional[str] = None):
        self._cipher: Optional[Fernet] = None

        key = key if key is not None else settings.encryption_key
        if not key:
            logger.warning(
                "ENCRYPTION_KEY not configured - ServiceM8 tokens will be stored in plaintext"
            )
            return

        try:
            self._cipher = Fernet(key.encode() if isinstance(key, str) else key)
            logger.info("Token encryption initialized")
        except (ValueError, TypeError) as e:
            logger.error(f"Invalid ENCRYPTION_KEY, tokens will be stored in plaintext: {e}")

    @property
    def enabled(self) -> bool:
        return self._cipher is not None

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a token, or return it unchanged when encryption is disabled."""
        if not self._cipher:
            return plaintext
        return self._cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, encrypted: str) -> str:
        """
        Decrypt a token.

        Rows written before encryption was enabled hold plaintext, so a value
        that is not a valid Fernet token is returned as-is.
        """
        if not self._cipher:
            return encrypted

        try:
            return self._cipher.decrypt(encrypted.encode()).decode()
        except InvalidToken:
            logger.debug("Stored token is not Fernet-encrypted, treating as plaintext")
            return encrypted

    def is_encrypted(self, token: str) -> bool:
        """Fernet tokens are url-safe base64 starting with the version byte."""
        return self.enabled and token.startswith("gAAAAA") and len(token) > 50


_encryption_instance: Optional[TokenEncryption] = None


def get_token_encryption() -> TokenEncryption:
    """Get singleton token encryption instance."""
    global _encryption_instance
    if _encryption_instance is None:
        _encryption_instance = TokenEncryption()
    return _encryption_instance
