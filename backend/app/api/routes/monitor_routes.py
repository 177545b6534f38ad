"""
Monitor API Routes.

Operator controls for the background compliance monitor:
- Status / health
- Start and graceful stop
- Immediate run over all active cases
- Manual out-of-cycle check of one case (works while stopped)
"""
from fastapi import APIRouter, Depends, Path

from app.api.deps import get_monitor
from app.services.scheduler import ComplianceMonitor


router = APIRouter(prefix="/api/monitor", tags=["Monitor"])


@router.get(
    "/status",
    summary="Monitor Status",
    description="Running state, next run, failure counts and the last run summary"
)
async def get_monitor_status(
    monitor: ComplianceMonitor = Depends(get_monitor)
) -> dict:
    return monitor.get_status()


@router.post(
    "/start",
    summary="Start Monitor",
    description="Start the periodic compliance check"
)
async def start_monitor(
    monitor: ComplianceMonitor = Depends(get_monitor)
) -> dict:
    started = monitor.start()
    return {
        "success": True,
        "started": started,
        "message": "Monitor started" if started else "Monitor was already running",
        "is_running": monitor.is_running
    }


@router.post(
    "/stop",
    summary="Stop Monitor",
    description="Stop the periodic compliance check after the in-flight run settles"
)
async def stop_monitor(
    monitor: ComplianceMonitor = Depends(get_monitor)
) -> dict:
    stopped = await monitor.stop()
    return {
        "success": True,
        "stopped": stopped,
        "message": "Monitor stopped" if stopped else "Monitor was not running",
        "is_running": monitor.is_running
    }


@router.post(
    "/check",
    summary="Run Monitoring Check",
    description="Evaluate every active case now"
)
async def run_check(
    monitor: ComplianceMonitor = Depends(get_monitor)
) -> dict:
    summary = await monitor.run_monitoring_check()
    return {
        "success": True,
        "summary": summary.to_dict()
    }


@router.post(
    "/check/{case_id}",
    summary="Check Case",
    description="Evaluate one case now; 404 if the case is not tracked"
)
async def check_case(
    case_id: str = Path(..., description="Case identifier"),
    monitor: ComplianceMonitor = Depends(get_monitor)
) -> dict:
    result = await monitor.check_case(case_id)
    return {
        "success": True,
        "monitor_running": monitor.is_running,
        "result": result.to_dict()
    }
