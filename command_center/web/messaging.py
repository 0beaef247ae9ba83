"""
Outbound SMS and email routes, rate limited per client address.
"""

import logging

from fastapi import APIRouter, Request

from config import settings
from ..middleware.rate_limit import limiter
from ..models.api_validation import EmailRequest, SmsRequest
from ..services.messaging import get_messaging_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messaging", tags=["messaging"])


@router.post("/sms")
@limiter.limit(settings.messaging_rate_limit)
async def send_sms(request: Request, body: SmsRequest):
    logger.info(f"Sending SMS to {body.to} (job {body.job_uuid or '-'})")
    return await get_messaging_service().send_sms(body.to, body.message, body.job_uuid)


@router.post("/email")
@limiter.limit(settings.messaging_rate_limit)
async def send_email(request: Request, body: EmailRequest):
    logger.info(f"Sending email to {body.to} (job {body.job_uuid or '-'})")
    return await get_messaging_service().send_email(body.to, body.subject, body.body, body.job_uuid)
