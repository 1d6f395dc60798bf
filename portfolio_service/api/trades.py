"""Trade ledger API."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from portfolio_service.database import get_session
from portfolio_service.schemas.trade import TradeClose, TradeCreate, TradeRead
from portfolio_service.services import ledger

router = APIRouter(prefix="/api/trades", tags=["trades"])


@router.get("", response_model=list[TradeRead])
def list_trades(
    owner_id: str | None = None,
    open_only: bool = False,
    limit: int = 200,
    offset: int = 0,
    session: Session = Depends(get_session),
):
    return ledger.list_trades(session, owner_id=owner_id, open_only=open_only, limit=limit, offset=offset)


@router.get("/{trade_id}", response_model=TradeRead)
def get_trade(trade_id: int, session: Session = Depends(get_session)):
    try:
        return ledger.get_trade(session, trade_id)
    except ledger.TradeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# Writes are async so their change notifications fire on the event loop thread
@router.post("", response_model=TradeRead, status_code=201)
async def create_trade(data: TradeCreate, session: Session = Depends(get_session)):
    return ledger.create_trade(session, data)


@router.post("/{trade_id}/close", response_model=TradeRead)
async def close_trade(
    trade_id: int,
    data: TradeClose,
    owner_id: str | None = None,
    session: Session = Depends(get_session),
):
    try:
        return ledger.close_trade(session, trade_id, data.closed_price, owner_id=owner_id)
    except ledger.TradeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ledger.TradeAlreadyClosedError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("/{trade_id}", status_code=204)
async def delete_trade(
    trade_id: int,
    owner_id: str | None = None,
    session: Session = Depends(get_session),
):
    try:
        ledger.delete_trade(session, trade_id, owner_id=owner_id)
    except ledger.TradeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
