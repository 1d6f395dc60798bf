"""CLI tool for admin operations.

Usage:
    python -m portfolio_service.cli snapshot [owner_id]     (defaults to the community book)
    python -m portfolio_service.cli set-baseline <owner_id> <amount>
    python -m portfolio_service.cli size <entry> <stop> <risk> [long|short] [target] [portfolio]
"""

import asyncio
import sys

from sqlmodel import Session

from portfolio_service.config import settings
from portfolio_service.database import engine, create_db_and_tables
from portfolio_service.engine.reconciler import ReconciliationController
from portfolio_service.engine.risk import Direction, assess_trade
from portfolio_service.engine.sources import ReconciliationError
from portfolio_service.services import ledger
from portfolio_service.services.sources import sql_controller_factory
from portfolio_service.utils.logging import setup_logging


def _fmt(value, places: int = 2) -> str:
    if value is None:
        return "-"
    return f"{value:,.{places}f}"


async def _load_snapshot(owner_id: str):
    controller: ReconciliationController = sql_controller_factory(engine)(owner_id)
    try:
        return await controller.start()
    finally:
        await controller.close()


def show_snapshot(owner_id: str):
    """Print the current valuation of an owner scope."""
    create_db_and_tables()
    try:
        view = asyncio.run(_load_snapshot(owner_id))
    except ReconciliationError as e:
        print(f"Could not load portfolio: {e}")
        sys.exit(1)

    snap = view.snapshot
    print(f"Portfolio: {owner_id}")
    print(f"  Baseline:          {_fmt(snap.baseline)}")
    print(f"  Current equity:    {_fmt(snap.current_equity)} ({_fmt(snap.percent_change)}%)")
    print(f"  Realized profit:   {_fmt(snap.realized_profit)}")
    print(f"  Realized loss:     {_fmt(snap.realized_loss)}")
    print(f"  Unrealized PnL:    {_fmt(snap.unrealized_pnl)}")
    print(f"  Win rate:          {_fmt(snap.win_rate, 1)}%")
    if snap.has_risk_reward:
        print(f"  Avg risk/reward:   1:{_fmt(snap.average_risk_reward)}")
    else:
        print("  Avg risk/reward:   no data")
    print(
        f"  Trades:            {snap.open_count} open, "
        f"{snap.closed_profit_count} profit, {snap.closed_loss_count} loss"
    )
    for line in snap.trades:
        if line.malformed:
            print(f"    #{line.trade_id} {line.symbol}: skipped ({line.malformed})")
        elif line.price_missing:
            print(f"    #{line.trade_id} {line.symbol}: no price yet")


def set_baseline(owner_id: str, amount: str):
    """Set the starting capital of an owner scope."""
    try:
        value = float(amount)
    except ValueError:
        print("Amount must be a number.")
        sys.exit(1)

    create_db_and_tables()
    with Session(engine) as session:
        baseline = ledger.set_baseline(session, owner_id, value)
    print(f"Baseline for '{owner_id}' set to {_fmt(baseline.initial_balance)}")


def size_position(args: list[str]):
    """Run the risk calculator from the command line."""
    if len(args) < 3:
        print("Usage: size <entry> <stop> <risk> [long|short] [target] [portfolio]")
        sys.exit(1)

    entry, stop, risk = args[0], args[1], args[2]
    direction = args[3] if len(args) > 3 else Direction.LONG.value
    if Direction.parse(direction) is None:
        print(f"Direction must be 'long' or 'short', got '{direction}'.")
        sys.exit(1)
    target = args[4] if len(args) > 4 else None
    portfolio = args[5] if len(args) > 5 else None

    result = assess_trade(entry, stop, risk, direction, target=target, portfolio_size=portfolio)
    if not result.sizable:
        print("Cannot size this position (check that the stop is on the losing side of the entry).")
        sys.exit(1)

    print(f"Shares:            {_fmt(result.shares)}")
    print(f"Position value:    {_fmt(result.position_value)}")
    print(f"Risk per share:    {_fmt(result.risk_per_unit)}")
    if result.reward_risk_ratio is not None:
        print(f"Reward/risk:       1:{_fmt(result.reward_risk_ratio)}")
    if result.portfolio_risk_percent is not None:
        print(f"Portfolio at risk: {_fmt(result.portfolio_risk_percent)}%")


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m portfolio_service.cli <command>")
        print("Commands: snapshot, set-baseline, size")
        sys.exit(1)

    setup_logging("WARNING")
    command = sys.argv[1]
    if command == "snapshot" and len(sys.argv) <= 3:
        show_snapshot(sys.argv[2] if len(sys.argv) == 3 else settings.community_owner_id)
    elif command == "set-baseline" and len(sys.argv) == 4:
        set_baseline(sys.argv[2], sys.argv[3])
    elif command == "size":
        size_position(sys.argv[2:])
    else:
        print(f"Unknown command or wrong arguments: {' '.join(sys.argv[1:])}")
        sys.exit(1)


if __name__ == "__main__":
    main()
