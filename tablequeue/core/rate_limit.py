"""Shared rate limiter instance for use across route files."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from tablequeue.core.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

# Applied to unauthenticated write endpoints (order submit, queue join, waiter calls)
PUBLIC_WRITE_LIMIT = settings.public_write_rate_limit
