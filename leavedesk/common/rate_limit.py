"""Rate limiting configuration using slowapi.

Module-level Limiter wired into the app in main.py. The default limit
comes from ``RATE_LIMIT_DEFAULT``; routes can override it with
``@limiter.limit("N/period")``.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from leavedesk.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)
