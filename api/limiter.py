"""
api/limiter.py -- The one slowapi Limiter shared by every route module.

api/main.py mounts it through SlowAPIMiddleware and app.state.limiter; the
auth and pets routers decorate their brute-forceable endpoints (register,
login, sub-user registration, share-code redemption) with @limiter.limit().
Counters live in process memory, keyed by client IP.

RATE_LIMIT_ENABLED=false makes every limit a no-op; the test suite sets it
so repeated logins from one TestClient are not throttled.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().rate_limit_enabled,
)
