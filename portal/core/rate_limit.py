"""
Rate limiter shared by the auth routes.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from portal.config import settings

limiter = Limiter(key_func=get_remote_address)

AUTH_RATE_LIMIT = f"{settings.rate_limit_per_minute}/minute"
