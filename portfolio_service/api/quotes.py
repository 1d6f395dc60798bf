"""Price cache API: read quotes, replace the quote set, set one quote."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from portfolio_service.database import get_session
from portfolio_service.engine.valuation import normalize_symbol
from portfolio_service.schemas.quote import QuoteRead, QuoteSetReplace, QuoteUpdate
from portfolio_service.services import ledger

router = APIRouter(prefix="/api/quotes", tags=["quotes"])


@router.get("", response_model=list[QuoteRead])
def list_quotes(session: Session = Depends(get_session)):
    return ledger.list_quotes(session)


@router.put("")
async def replace_quotes(data: QuoteSetReplace, session: Session = Depends(get_session)):
    """Replace the whole quote set. Symbols missing from the body are dropped."""
    count = ledger.replace_quotes(session, data.quotes)
    return {"status": "ok", "symbols": count}


@router.put("/{symbol}", response_model=QuoteRead)
async def set_quote(symbol: str, data: QuoteUpdate, session: Session = Depends(get_session)):
    key = normalize_symbol(symbol)
    if not key:
        raise HTTPException(status_code=422, detail="symbol must not be empty")
    return ledger.upsert_quote(session, key, data.price)
