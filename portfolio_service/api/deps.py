"""Shared API dependencies."""

from fastapi import HTTPException, Request, status

from portfolio_service.engine.reconciler import ReconciliationController
from portfolio_service.engine.registry import ControllerRegistry
from portfolio_service.engine.sources import ReconciliationError


def get_registry(request: Request) -> ControllerRegistry:
    """The controller registry created in the app lifespan."""
    return request.app.state.registry


async def get_controller(registry: ControllerRegistry, owner_id: str) -> ReconciliationController:
    """Start (or reuse) the owner's controller and wait for it to settle.

    A scope whose initial load failed answers 503 with the fetch error.
    """
    try:
        controller = await registry.get(owner_id)
    except ReconciliationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    await controller.wait_until_settled()
    if controller.view is None:
        error = controller.error
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(error) if error else "Portfolio not loaded yet",
        )
    return controller
