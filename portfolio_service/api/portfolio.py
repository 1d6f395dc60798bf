"""Portfolio API: reconciled valuation per owner scope and baseline updates."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from portfolio_service.api.deps import get_controller, get_registry
from portfolio_service.database import get_session
from portfolio_service.engine.registry import ControllerRegistry
from portfolio_service.engine.sources import ReconciliationError
from portfolio_service.schemas.portfolio import BaselineRead, BaselineUpdate, PortfolioViewRead
from portfolio_service.services import ledger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/portfolio", tags=["portfolio"])


@router.get("/{owner_id}", response_model=PortfolioViewRead)
async def get_portfolio(owner_id: str, registry: ControllerRegistry = Depends(get_registry)):
    """Latest fully computed valuation for the owner scope."""
    controller = await get_controller(registry, owner_id)
    return PortfolioViewRead.from_view(controller.view, controller.state)


@router.post("/{owner_id}/refresh", response_model=PortfolioViewRead)
async def refresh_portfolio(owner_id: str, registry: ControllerRegistry = Depends(get_registry)):
    """Force a re-fetch of trades, quotes and baseline.

    Also retries a scope whose initial load failed.
    """
    try:
        controller = await registry.get(owner_id)
    except ReconciliationError:
        # Kept by the registry; the refresh below retries the load
        controller = registry.peek(owner_id)
    if controller is None:
        raise HTTPException(status_code=503, detail="Portfolio not loaded yet")

    try:
        await controller.refresh()
    except ReconciliationError as e:
        # Last good snapshot stays available; report the failure
        logger.warning(f"Refresh failed: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    if controller.view is None:
        raise HTTPException(status_code=503, detail="Portfolio not loaded yet")
    return PortfolioViewRead.from_view(controller.view, controller.state)


@router.delete("/{owner_id}", status_code=204)
async def release_portfolio(owner_id: str, registry: ControllerRegistry = Depends(get_registry)):
    """Stop reconciling the owner scope."""
    if not await registry.release(owner_id):
        raise HTTPException(status_code=404, detail="Portfolio is not being tracked")


@router.get("/{owner_id}/baseline", response_model=BaselineRead)
def get_baseline(owner_id: str, session: Session = Depends(get_session)):
    baseline = ledger.get_baseline(session, owner_id)
    if baseline is None:
        raise HTTPException(status_code=404, detail="Baseline not set")
    return baseline


@router.put("/{owner_id}/baseline", response_model=BaselineRead)
async def set_baseline(owner_id: str, data: BaselineUpdate, session: Session = Depends(get_session)):
    return ledger.set_baseline(session, owner_id, data.initial_balance)
