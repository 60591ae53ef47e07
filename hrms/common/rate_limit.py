"""Rate limiting configuration using slowapi.

A module-level Limiter instance that routers can import for per-endpoint
limits; wired into the FastAPI app in main.py.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from hrms.config import settings

# Individual routes can override with @limiter.limit("N/period").
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)
