"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/v1/auth.py (to apply per-route limits with @limiter.limit()).

RATE_LIMIT is an application limit: one fixed-window counter per client
address shared by every route (100 requests / 15 minutes by default).

SlowAPIMiddleware skips any route that carries its own @limiter.limit(), and
the decorator only checks the limits attached to it. A decorated route must
therefore also carry @application_limit() to keep counting against the
application-wide window.

Using a single shared instance ensures all routes share the same in-memory
counter store.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

# slowapi files application limits under this scope; a shared limit with the
# same scope and limit string hits the same counter.
APPLICATION_SCOPE = "global"

limiter = Limiter(
    key_func=get_remote_address,
    application_limits=[get_settings().rate_limit],
    strategy="fixed-window",
    storage_uri="memory://",
)


def application_limit():
    """Decorator that counts a route against RATE_LIMIT alongside its own limit."""
    return limiter.shared_limit(get_settings().rate_limit, scope=APPLICATION_SCOPE)
