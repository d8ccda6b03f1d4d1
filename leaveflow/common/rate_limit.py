"""Rate limiting configuration using slowapi.

Provides a module-level Limiter instance that routers import for per-endpoint
limits (the balance renewal endpoint in particular), wired into the FastAPI
app in main.py.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["60/minute"],
)
