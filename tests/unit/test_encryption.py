"""
Tests for OAuth token encryption (encryption.py).
"""

from cryptography.fernet import Fernet

from command_center.utils.encryption import TokenEncryption


class TestTokenEncryption:
    """Test OAuth token encryption/decryption."""

    def test_encrypt_decrypt_round_trip(self):
        encryption = TokenEncryption(Fernet.generate_key().decode())
        encrypted = encryption.encrypt("sm8_access_token")

        assert encrypted != "sm8_access_token"
        assert encryption.is_encrypted(encrypted)
        assert encryption.decrypt(encrypted) == "sm8_access_token"

    def test_decrypt_plaintext_token(self):
        """Rows written before a key was configured still read back."""
        encryption = TokenEncryption(Fernet.generate_key().decode())
        assert encryption.decrypt("old_plaintext_token") == "old_plaintext_token"
        assert not encryption.is_encrypted("old_plaintext_token")

    def test_no_key_stores_plaintext(self):
        encryption = TokenEncryption("")
        assert not encryption.enabled
        assert encryption.encrypt("token") == "token"
        assert encryption.decrypt("token") == "token"

    def test_invalid_key_disables(self):
        encryption = TokenEncryption("not-a-fernet-key")
        assert not encryption.enabled
        assert encryption.encrypt("token") == "token"

    def test_other_key_cannot_decrypt(self):
        """A token from a rotated key is passed through, not raised."""
        encrypted = TokenEncryption(Fernet.generate_key().decode()).encrypt("secret")
        other = TokenEncryption(Fernet.generate_key().decode())
        assert other.decrypt(encrypted) == encrypted
