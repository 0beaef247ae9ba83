"""
ServiceM8 OAuth routes.

The callback is served at both /auth/servicem8/callback and
/api/auth/servicem8/callback since either may be registered with ServiceM8.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from ..services.oauth import get_oauth_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

_RESULT_PAGE = """
<!DOCTYPE html>
<html>
<head><title>{title}</title></head>
<body style="font-family: sans-serif; text-align: center; padding-top: 80px;">
    <h2>{title}</h2>
    <p>{message}</p>
    <script>
        if (window.opener) {{
            window.opener.postMessage({{ type: '{event}' }}, '*');
            setTimeout(() => window.close(), 2000);
        }}
    </script>
</body>
</html>
"""


def _result_page(success: bool, message: str) -> HTMLResponse:
    return HTMLResponse(content=_RESULT_PAGE.format(
        title="ServiceM8 Connected" if success else "Authorization Failed",
        message=message,
        event="servicem8_connected" if success else "servicem8_error",
    ))


@router.get("/api/auth/servicem8/login")
async def servicem8_login(request: Request):
    service = get_oauth_service()
    if not service.configured:
        raise HTTPException(status_code=400, detail="ServiceM8 OAuth client is not configured")
    return RedirectResponse(url=service.build_authorize_url(str(request.base_url)))


async def _handle_callback(code: Optional[str], state: Optional[str], error: Optional[str]) -> HTMLResponse:
    if error:
        logger.warning(f"ServiceM8 authorization denied: {error}")
        return _result_page(False, "Authorization was cancelled or denied.")

    service = get_oauth_service()
    redirect_uri = service.consume_state(state)
    if not redirect_uri:
        raise HTTPException(status_code=400, detail="Invalid state")
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    if not await service.exchange_code(code, redirect_uri):
        return _result_page(False, "Could not complete the connection. Please try again.")
    return _result_page(True, "You can close this window.")


# Callbacks are registered before any parameterized auth routes
@router.get("/auth/servicem8/callback")
async def servicem8_callback(code: Optional[str] = None, state: Optional[str] = None, error: Optional[str] = None):
    return await _handle_callback(code, state, error)


@router.get("/api/auth/servicem8/callback")
async def servicem8_api_callback(code: Optional[str] = None, state: Optional[str] = None, error: Optional[str] = None):
    return await _handle_callback(code, state, error)


@router.get("/api/auth/servicem8/status")
async def servicem8_status():
    return await get_oauth_service().status()


@router.post("/api/auth/servicem8/disconnect")
async def servicem8_disconnect():
    removed = await get_oauth_service().disconnect()
    return {"success": True, "removed": removed}
