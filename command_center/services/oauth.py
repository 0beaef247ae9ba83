"""
ServiceM8 OAuth 2.0 authorization-code flow.

Access tokens are refreshed lazily on the code path that needs one. A failed
or impossible refresh means "not connected" (None), never an exception.
"""

import logging
import secrets
import time
from typing import Optional, Dict, Any, Tuple
from urllib.parse import urlencode

import httpx

from config import settings

logger = logging.getLogger(__name__)

PROVIDER = "servicem8"

# Unanswered authorize requests are forgotten after this long
STATE_TTL_SECONDS = 600


class OAuthService:
    """Builds authorize URLs, exchanges codes and refreshes ServiceM8 tokens."""

    def __init__(self, token_repository=None, transport: Optional[httpx.AsyncBaseTransport] = None):
        if token_repository is None:
            from ..database.repositories import get_oauth_repository
            token_repository = get_oauth_repository()
        self.tokens = token_repository
        self._transport = transport
        # state -> (redirect_uri, issued at), checked on callback
        self._states: Dict[str, Tuple[str, float]] = {}

    @property
    def configured(self) -> bool:
        return bool(settings.servicem8_client_id and settings.servicem8_client_secret)

    def redirect_uri(self, base_url: str) -> str:
        base = (settings.webhook_base_url or base_url).rstrip("/")
        return f"{base}/api/auth/servicem8/callback"

    def build_authorize_url(self, base_url: str) -> str:
        """Authorize URL with a fresh random state."""
        self._prune_states()
        state = secrets.token_urlsafe(24)
        redirect_uri = self.redirect_uri(base_url)
        self._states[state] = (redirect_uri, time.monotonic())
        params = {
            "response_type": "code",
            "client_id": settings.servicem8_client_id,
            "redirect_uri": redirect_uri,
            "scope": settings.servicem8_scopes,
            "state": state,
        }
        return f"{settings.servicem8_authorize_url}?{urlencode(params)}"

    def _prune_states(self) -> None:
        cutoff = time.monotonic() - STATE_TTL_SECONDS
        expired = [s for s, (_, issued) in self._states.items() if issued < cutoff]
        for state in expired:
            del self._states[state]
        if expired:
            logger.debug(f"Dropped {len(expired)} expired OAuth states")

    def consume_state(self, state: Optional[str]) -> Optional[str]:
        """Return the redirect URI bound to a state, once, if it has not expired."""
        if not state:
            return None
        entry = self._states.pop(state, None)
        if entry is None:
            return None
        redirect_uri, issued = entry
        if time.monotonic() - issued > STATE_TTL_SECONDS:
            logger.warning("OAuth callback arrived with an expired state")
            return None
        return redirect_uri

    async def _post_token(self, data: Dict[str, str]) -> Optional[Dict[str, Any]]:
        async with httpx.AsyncClient(timeout=settings.http_timeout_seconds, transport=self._transport) as client:
            try:
                response = await client.post(settings.servicem8_token_url, data=data)
            except httpx.HTTPError as e:
                logger.error(f"ServiceM8 token endpoint unreachable: {e}")
                return None

        if response.status_code != 200:
            logger.error(f"ServiceM8 token request failed: {response.status_code} {response.text[:500]}")
            return None
        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"ServiceM8 token endpoint returned a non-JSON body: {e}")
            return None
        if not isinstance(payload, dict):
            logger.error("ServiceM8 token endpoint returned an unexpected payload")
            return None
        return payload

    async def exchange_code(self, code: str, redirect_uri: str) -> bool:
        """Swap an authorization code for tokens and store them."""
        token_data = await self._post_token({
            "grant_type": "authorization_code",
            "code": code,
            "client_id": settings.servicem8_client_id,
            "client_secret": settings.servicem8_client_secret,
            "redirect_uri": redirect_uri,
        })
        if not token_data or not token_data.get("access_token"):
            return False

        stored = await self.tokens.store_token(
            provider=PROVIDER,
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token"),
            expires_in=token_data.get("expires_in"),
            scope=token_data.get("scope") or settings.servicem8_scopes,
        )
        if stored:
            logger.info("ServiceM8 OAuth connected")
        return stored

    async def refresh(self, refresh_token: str) -> Optional[str]:
        """Use the refresh token; returns the new access token or None."""
        token_data = await self._post_token({
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": settings.servicem8_client_id,
            "client_secret": settings.servicem8_client_secret,
        })
        if not token_data or not token_data.get("access_token"):
            return None

        await self.tokens.store_token(
            provider=PROVIDER,
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token") or refresh_token,
            expires_in=token_data.get("expires_in"),
            scope=token_data.get("scope"),
        )
        logger.info("Refreshed ServiceM8 access token")
        return token_data["access_token"]

    async def get_valid_access_token(self) -> Optional[str]:
        """Current access token, refreshing if expired. None means not connected."""
        try:
            token = await self.tokens.get_token(PROVIDER)
        except Exception as e:
            logger.error(f"Could not load ServiceM8 token: {e}")
            return None

        if not token:
            return None
        if not self.tokens.is_expired(token):
            return token["access_token"]

        if not token.get("refresh_token"):
            logger.warning("ServiceM8 token expired and no refresh token stored")
            return None
        return await self.refresh(token["refresh_token"])

    async def status(self) -> Dict[str, Any]:
        token = await self.tokens.get_token(PROVIDER)
        if not token:
            return {"connected": False, "message": "Not connected to ServiceM8 OAuth"}

        expired = self.tokens.is_expired(token)
        return {
            "connected": not expired,
            "expires_at": token["expires_at"].isoformat() if token.get("expires_at") else None,
            "scope": token.get("scope"),
            "message": "Token expired, please reconnect" if expired else "Connected to ServiceM8",
        }

    async def disconnect(self) -> bool:
        return await self.tokens.delete_token(PROVIDER)


_oauth_service: Optional[OAuthService] = None


def get_oauth_service() -> OAuthService:
    """Get the OAuth service singleton."""
    global _oauth_service
    if _oauth_service is None:
        _oauth_service = OAuthService()
    return _oauth_service
