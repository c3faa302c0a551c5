# medibot/limiter.py
# Holds the rate limiter instance so main.py and the routers share it
# without importing each other.

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings

limiter = Limiter(key_func=get_remote_address, enabled=get_settings().rate_limit_enabled)
