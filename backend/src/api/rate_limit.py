"""
Shared slowapi limiter.

Routers decorate endpoints with ``limiter.limit``; the application installs
the limiter on ``app.state`` and registers the 429 handler.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from src.core.config import get_settings

limiter = Limiter(key_func=get_remote_address)


def order_create_limit() -> str:
    """Current per-client limit for order creation."""
    return get_settings().order_create_rate_limit
