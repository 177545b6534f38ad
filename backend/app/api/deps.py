"""
FastAPI dependencies.

The engine is built once in the application lifespan and kept on
app.state; routes receive it (or its parts) through these dependencies.
"""
from fastapi import Depends, Request

from app.core.exceptions import ConfigurationError
from app.services.engine import ComplianceEngine
from app.services.scheduler import ComplianceMonitor
from app.services.timeline_enforcement import TimelineEnforcementService


def get_engine(request: Request) -> ComplianceEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise ConfigurationError("Compliance engine is not initialised", config_key="engine")
    return engine


def get_service(engine: ComplianceEngine = Depends(get_engine)) -> TimelineEnforcementService:
    return engine.service


def get_monitor(engine: ComplianceEngine = Depends(get_engine)) -> ComplianceMonitor:
    return engine.monitor
