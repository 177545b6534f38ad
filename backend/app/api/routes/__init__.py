# API Routes
from .compliance_routes import router as compliance_router
from .monitor_routes import router as monitor_router
from .holiday_routes import router as holiday_router

__all__ = [
    "compliance_router",
    "monitor_router",
    "holiday_router",
]
