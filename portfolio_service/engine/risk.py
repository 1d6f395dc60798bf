"""Position sizing and risk/reward helpers.

Every function here is pure. "Cannot size" is reported as ``None``, never
as zero and never as an exception: a zero or negative risk distance, a
non-positive input, a non-numeric input, an unknown direction or a result
outside the Decimal range all yield ``None``.
"""

from dataclasses import dataclass
from decimal import Decimal, DecimalException, localcontext
from enum import Enum
from typing import Any

from portfolio_service.utils.money import HUNDRED, MONEY_CONTEXT, positive_decimal


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"

    @classmethod
    def parse(cls, value: Any) -> "Direction | None":
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class RiskAssessment:
    """Everything the risk calculator shows for one prospective trade."""

    shares: Decimal | None = None
    position_value: Decimal | None = None
    risk_per_unit: Decimal | None = None
    reward_risk_ratio: Decimal | None = None
    portfolio_risk_percent: Decimal | None = None

    @property
    def sizable(self) -> bool:
        return self.shares is not None


def _distance(start: Decimal, end: Decimal, direction: Direction) -> Decimal | None:
    """Signed move from ``start`` to ``end`` in the trade's favour."""
    try:
        with localcontext(MONEY_CONTEXT):
            return end - start if direction == Direction.LONG else start - end
    except DecimalException:
        return None


def _quotient(numerator: Decimal, denominator: Decimal) -> Decimal | None:
    try:
        with localcontext(MONEY_CONTEXT):
            return numerator / denominator
    except DecimalException:
        return None


def risk_per_unit(entry: Any, stop: Any, direction: Direction | str = Direction.LONG) -> Decimal | None:
    """Loss per unit if the stop is hit. None unless strictly positive."""
    entry_d = positive_decimal(entry)
    stop_d = positive_decimal(stop)
    side = Direction.parse(direction)
    if entry_d is None or stop_d is None or side is None:
        return None
    distance = _distance(stop_d, entry_d, side)
    return distance if distance is not None and distance > 0 else None


def reward_per_unit(entry: Any, target: Any, direction: Direction | str = Direction.LONG) -> Decimal | None:
    """Gain per unit if the target is hit. None unless strictly positive."""
    entry_d = positive_decimal(entry)
    target_d = positive_decimal(target)
    side = Direction.parse(direction)
    if entry_d is None or target_d is None or side is None:
        return None
    distance = _distance(entry_d, target_d, side)
    return distance if distance is not None and distance > 0 else None


def size_position(
    entry: Any,
    stop: Any,
    risk_amount: Any,
    direction: Direction | str = Direction.LONG,
) -> Decimal | None:
    """Number of units to buy (or short) so that hitting the stop loses ``risk_amount``."""
    risk = positive_decimal(risk_amount)
    per_unit = risk_per_unit(entry, stop, direction)
    if risk is None or per_unit is None:
        return None
    return _quotient(risk, per_unit)


def reward_risk_ratio(
    entry: Any,
    stop: Any,
    target: Any,
    direction: Direction | str = Direction.LONG,
) -> Decimal | None:
    """Planned reward divided by planned risk, using the directional sign convention."""
    risk = risk_per_unit(entry, stop, direction)
    reward = reward_per_unit(entry, target, direction)
    if risk is None or reward is None:
        return None
    return _quotient(reward, risk)


def realized_risk_reward(entry: Any, stop: Any, closed: Any) -> Decimal | None:
    """Ratio achieved by a closed trade: ``|closed - entry| / |entry - stop|``.

    Distances are absolute, so a trade stopped out below its entry still
    yields a ratio. Returns None when the stop equals the entry.
    """
    entry_d = positive_decimal(entry)
    stop_d = positive_decimal(stop)
    closed_d = positive_decimal(closed)
    if entry_d is None or stop_d is None or closed_d is None:
        return None
    try:
        with localcontext(MONEY_CONTEXT):
            risk = abs(entry_d - stop_d)
            if risk == 0:
                return None
            return abs(closed_d - entry_d) / risk
    except DecimalException:
        return None


def portfolio_risk_percent(risk_amount: Any, portfolio_size: Any) -> Decimal | None:
    """Share of the portfolio put at risk, in percent."""
    risk = positive_decimal(risk_amount)
    portfolio = positive_decimal(portfolio_size)
    if risk is None or portfolio is None:
        return None
    share = _quotient(risk, portfolio)
    if share is None:
        return None
    try:
        with localcontext(MONEY_CONTEXT):
            return share * HUNDRED
    except DecimalException:
        return None


def position_value(shares: Any, entry: Any) -> Decimal | None:
    shares_d = positive_decimal(shares)
    entry_d = positive_decimal(entry)
    if shares_d is None or entry_d is None:
        return None
    try:
        with localcontext(MONEY_CONTEXT):
            return shares_d * entry_d
    except DecimalException:
        return None


def assess_trade(
    entry: Any,
    stop: Any,
    risk_amount: Any,
    direction: Direction | str = Direction.LONG,
    target: Any = None,
    portfolio_size: Any = None,
) -> RiskAssessment:
    """Run the full calculator for one prospective trade.

    If the position cannot be sized, every output is None; the ratio and
    the portfolio percentage are only reported alongside a valid size.
    """
    shares = size_position(entry, stop, risk_amount, direction)
    if shares is None:
        return RiskAssessment()

    ratio = None
    if target is not None:
        ratio = reward_risk_ratio(entry, stop, target, direction)

    percent = None
    if portfolio_size is not None:
        percent = portfolio_risk_percent(risk_amount, portfolio_size)

    return RiskAssessment(
        shares=shares,
        position_value=position_value(shares, entry),
        risk_per_unit=risk_per_unit(entry, stop, direction),
        reward_risk_ratio=ratio,
        portfolio_risk_percent=percent,
    )
