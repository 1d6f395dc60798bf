"""System API: health check, scheduler status, tracked owner scopes."""

from fastapi import APIRouter, Depends

from portfolio_service.api.deps import get_registry
from portfolio_service.engine.registry import ControllerRegistry

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler")
def scheduler_status():
    """Current scheduler state with job details."""
    from portfolio_service.engine.scheduler import get_scheduler_status
    return get_scheduler_status()


@router.get("/controllers")
def controllers(registry: ControllerRegistry = Depends(get_registry)):
    """Owner scopes currently being reconciled."""
    result = []
    for owner_id in registry.owners():
        controller = registry.peek(owner_id)
        view = controller.view
        result.append({
            "owner_id": owner_id,
            "state": controller.state.value,
            "version": view.version if view else 0,
            "stale": controller.is_stale,
        })
    return result
