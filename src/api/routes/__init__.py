"""API route modules."""

from .health import router as health_router
from .post_call import router as post_call_router
from .reports import router as reports_router

__all__ = ["health_router", "reports_router", "post_call_router"]
