"""Shared rate limiter (slowapi)"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.RATE_LIMIT_PER_MINUTE}/minute"],
    enabled=settings.RATE_LIMIT_ENABLED,
)

# Scanning and paying are the endpoints worth brute-forcing
SCAN_LIMIT = "20/minute"
