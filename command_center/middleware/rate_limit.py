"""
Slowapi rate limiting.

Only outbound messaging is limited: each SMS or email costs money and
lands on a customer's phone.
"""
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
import logging

logger = logging.getLogger(__name__)


def create_limiter(storage_uri: str = None) -> Limiter:
    """
    Create the slowapi Limiter.

    Without storage_uri, limits are tracked in memory (single instance only).
    """
    if storage_uri:
        limiter = Limiter(key_func=get_remote_address, storage_uri=storage_uri)
        logger.info("Rate limiting configured with shared storage backend")
    else:
        limiter = Limiter(key_func=get_remote_address)
    return limiter


# Route decorators need the limiter at import time
limiter = create_limiter()


def setup_rate_limiting(app) -> Limiter:
    """Attach the limiter and its 429 handler to the app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    logger.info("Slowapi rate limiting enabled")
    return limiter
