"""
Outbound SMS and email through ServiceM8.

Messages go through the ServiceM8 platform endpoints so they appear in the
job diary. Single attempt: a failure is returned to the caller, not retried.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from ..integrations.servicem8 import ServiceM8Client, create_servicem8_client

logger = logging.getLogger(__name__)


async def _oauth_client() -> ServiceM8Client:
    return await create_servicem8_client(prefer_oauth=True)


class MessagingService:
    def __init__(self, client_factory: Optional[Callable[[], Awaitable[ServiceM8Client]]] = None):
        self._client_factory = client_factory or _oauth_client

    async def send_sms(self, to: str, message: str, job_uuid: Optional[str] = None) -> Dict[str, Any]:
        async with await self._client_factory() as client:
            result = await client.send_sms(to, message, job_uuid)
        return {"success": True, "channel": "sms", "to": to, "result": result}

    async def send_email(
        self, to: str, subject: str, body: str, job_uuid: Optional[str] = None
    ) -> Dict[str, Any]:
        async with await self._client_factory() as client:
            result = await client.send_email(to, subject, body, job_uuid)
        return {"success": True, "channel": "email", "to": to, "result": result}


_messaging_service: Optional[MessagingService] = None


def get_messaging_service() -> MessagingService:
    global _messaging_service
    if _messaging_service is None:
        _messaging_service = MessagingService()
    return _messaging_service
