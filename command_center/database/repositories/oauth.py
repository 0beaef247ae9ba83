"""
Repository for OAuth token storage and retrieval.

Holds one token per provider (only "servicem8" today). Access and refresh
tokens are Fernet-encrypted before storage; rows written before encryption
was enabled still decrypt as plaintext.
"""

import logging
from typing import Optional, Dict, Any
from datetime import datetime, timedelta

from sqlalchemy import select, delete

from ..models import OAuthTokenDB
from ..connection import get_database
from ...utils.encryption import get_token_encryption
from ...utils.datetime_utils import get_local_now

logger = logging.getLogger(__name__)


class OAuthTokenRepository:
    """Repository for OAuth token operations."""

    def __init__(self):
        self.db = get_database()

    async def store_token(
        self,
        provider: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_in: Optional[int] = None,
        scope: Optional[str] = None,
    ) -> bool:
        """
        Store or replace the token for a provider.

        Args:
            provider: Provider key, e.g. "servicem8"
            access_token: OAuth access token
            refresh_token: OAuth refresh token (kept from the previous row if omitted)
            expires_in: Seconds until the access token expires
            scope: Space-separated granted scopes
        """
        try:
            encryption = get_token_encryption()
            encrypted_access = encryption.encrypt(access_token)
            encrypted_refresh = encryption.encrypt(refresh_token) if refresh_token else None

            expires_at = None
            if expires_in:
                expires_at = get_local_now() + timedelta(seconds=int(expires_in))

            async with self.db.session() as session:
                result = await session.execute(
                    select(OAuthTokenDB).where(OAuthTokenDB.provider == provider)
                )
                existing = result.scalar_one_or_none()

                if existing:
                    existing.access_token = encrypted_access
                    if encrypted_refresh:
                        existing.refresh_token = encrypted_refresh
                    existing.expires_at = expires_at
                    if scope:
                        existing.scope = scope
                    existing.updated_at = get_local_now()
                    logger.info(f"Updated encrypted {provider} token")
                else:
                    session.add(OAuthTokenDB(
                        provider=provider,
                        access_token=encrypted_access,
                        refresh_token=encrypted_refresh,
                        expires_at=expires_at,
                        scope=scope,
                    ))
                    logger.info(f"Stored new encrypted {provider} token")
                return True

        except Exception as e:
            logger.error(f"Error storing {provider} OAuth token: {e}", exc_info=True)
            return False

    async def get_token(self, provider: str) -> Optional[Dict[str, Any]]:
        """
        Get the decrypted token for a provider.

        Returns dict with access_token, refresh_token, expires_at, scope,
        or None if the provider is not connected.
        """
        async with self.db.session() as session:
            result = await session.execute(
                select(OAuthTokenDB).where(OAuthTokenDB.provider == provider)
            )
            token = result.scalar_one_or_none()

            if not token:
                return None

            encryption = get_token_encryption()
            return {
                "provider": token.provider,
                "access_token": encryption.decrypt(token.access_token),
                "refresh_token": encryption.decrypt(token.refresh_token) if token.refresh_token else None,
                "expires_at": token.expires_at,
                "scope": token.scope,
            }

    async def delete_token(self, provider: str) -> bool:
        """Remove the provider's token (disconnect)."""
        async with self.db.session() as session:
            result = await session.execute(
                delete(OAuthTokenDB).where(OAuthTokenDB.provider == provider)
            )
            deleted = result.rowcount > 0
            if deleted:
                logger.info(f"Deleted {provider} OAuth token")
            return deleted

    @staticmethod
    def is_expired(token: Dict[str, Any], now: Optional[datetime] = None) -> bool:
        """A token without an expiry never expires."""
        expires_at = token.get("expires_at")
        if not expires_at:
            return False
        return expires_at <= (now or get_local_now())


# Singleton
_oauth_repository: Optional[OAuthTokenRepository] = None


def get_oauth_repository() -> OAuthTokenRepository:
    """Get the OAuth repository singleton."""
    global _oauth_repository
    if _oauth_repository is None:
        _oauth_repository = OAuthTokenRepository()
    return _oauth_repository
