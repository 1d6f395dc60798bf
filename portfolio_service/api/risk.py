"""Risk calculator API."""

from fastapi import APIRouter

from portfolio_service.engine.risk import assess_trade
from portfolio_service.schemas.risk import RiskRequest, RiskResponse

router = APIRouter(prefix="/api/risk", tags=["risk"])


@router.post("/assess", response_model=RiskResponse)
def assess(body: RiskRequest):
    """Position size, position value, reward/risk and portfolio risk for one trade idea.

    Inputs that cannot be sized return ``sizable: false`` with null outputs.
    """
    result = assess_trade(
        entry=body.entry_price,
        stop=body.stop_loss,
        risk_amount=body.risk_amount,
        direction=body.direction,
        target=body.take_profit,
        portfolio_size=body.portfolio_size,
    )
    return RiskResponse(
        sizable=result.sizable,
        shares=result.shares,
        position_value=result.position_value,
        risk_per_unit=result.risk_per_unit,
        reward_risk_ratio=result.reward_risk_ratio,
        portfolio_risk_percent=result.portfolio_risk_percent,
    )
