"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and the route
modules (to apply per-route limits with @limiter.shared_limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Limits are fixed windows keyed on the client IP. The window strings come from
Settings (AUTH_RATE_LIMIT, PASSWORD_RESET_RATE_LIMIT) and are passed as
callables so they are read when the route is hit, not frozen at import.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().rate_limit_enabled,
)


def auth_limit() -> str:
    return get_settings().auth_rate_limit


def password_reset_limit() -> str:
    return get_settings().password_reset_rate_limit
