from .health import router as health_router
from .system import router as system_router
from .reports import router as reports_router

__all__ = ["health_router", "system_router", "reports_router"]
