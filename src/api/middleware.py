"""Rate limiting shared by every router (slowapi, keyed by client address)."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from src.config import settings

limiter = Limiter(key_func=get_remote_address)

# applied per route: @limiter.limit(RATE_LIMIT)
RATE_LIMIT = settings.rate_limit
