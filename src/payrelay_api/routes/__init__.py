"""API routes package.

Routers are organized by domain:

- health: Health check endpoint
- sessions: Payment session creation and status
- webhooks: Payment gateway webhook

All routers are registered in main.py with /api prefix.
"""

from .health import router as health_router
from .sessions import router as sessions_router
from .webhooks import router as webhooks_router

__all__ = [
    "health_router",
    "sessions_router",
    "webhooks_router",
]
