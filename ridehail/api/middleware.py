"""Rate limiting shared by every REST router."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from ridehail.config import settings

limiter = Limiter(key_func=get_remote_address)

DEFAULT_LIMIT = settings.rate_limit
PANIC_LIMIT = settings.panic_rate_limit
