"""P&L statistics over a set of trades.

All functions are pure computation with no I/O and no database access. Only closed
trades (pnl is not None) participate. Values are not rounded unless stated;
display rounding belongs to the caller.
"""

from collections.abc import Iterable
from dataclasses import dataclass, asdict
from datetime import datetime

import pandas as pd

from journal.models.trade import Trade
from journal.utils.constants import UNTAGGED_STRATEGY
from journal.utils.dates import as_utc


@dataclass
class PnlStats:
    total_pnl: float = 0.0
    win_rate: float = 0.0  # percent of closed trades with pnl > 0
    avg_win: float = 0.0
    avg_loss: float = 0.0  # mean of losing pnls, zero or negative
    total_trades: int = 0
    best_trade: float = 0.0  # floored at 0
    worst_trade: float = 0.0  # capped at 0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class EquityPoint:
    closed_at: datetime | None  # None for the origin point
    pnl: float


@dataclass
class StrategyStats:
    strategy: str
    stats: PnlStats

    def to_dict(self) -> dict:
        return {"strategy": self.strategy, **self.stats.to_dict()}


def closed_trades(trades: Iterable[Trade]) -> list[Trade]:
    return [t for t in trades if t.pnl is not None]


def compute_stats(trades: Iterable[Trade]) -> PnlStats:
    """Aggregate win/loss statistics. No closed trades gives all zeros."""
    pnls = [t.pnl for t in closed_trades(trades)]
    if not pnls:
        return PnlStats()

    # Break-even trades count toward the total but are neither wins nor losses
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]

    return PnlStats(
        total_pnl=sum(pnls),
        win_rate=len(wins) / len(pnls) * 100,
        avg_win=sum(wins) / len(wins) if wins else 0.0,
        avg_loss=sum(losses) / len(losses) if losses else 0.0,
        total_trades=len(pnls),
        best_trade=max(max(pnls), 0.0),
        worst_trade=min(min(pnls), 0.0),
    )


def compute_cumulative_pnl(trades: Iterable[Trade]) -> list[EquityPoint]:
    """Running P&L by closing time, anchored with a leading zero point.

    Trades without closed_at cannot be placed on the curve and are skipped.
    Returns an empty list when nothing is closed.
    """
    closed = [t for t in closed_trades(trades) if t.closed_at is not None]
    if not closed:
        return []

    frame = pd.DataFrame({
        "closed_at": [as_utc(t.closed_at) for t in closed],
        "pnl": [t.pnl for t in closed],
    })
    frame = frame.sort_values("closed_at", kind="stable")
    cumulative = frame["pnl"].cumsum().round(2)

    points = [EquityPoint(closed_at=None, pnl=0.0)]
    for ts, value in zip(frame["closed_at"], cumulative):
        points.append(EquityPoint(closed_at=ts.to_pydatetime(), pnl=float(value)))
    return points


def compute_pnl_by_symbol(trades: Iterable[Trade]) -> list[dict]:
    """Summed P&L per symbol, rounded to cents, best first."""
    totals: dict[str, float] = {}
    for t in closed_trades(trades):
        totals[t.symbol] = totals.get(t.symbol, 0.0) + t.pnl

    rows = [{"symbol": symbol, "pnl": round(pnl, 2)} for symbol, pnl in totals.items()]
    return sorted(rows, key=lambda r: r["pnl"], reverse=True)


def strategy_key(strategy: str | None) -> str:
    tag = (strategy or "").strip()
    return tag or UNTAGGED_STRATEGY


def compute_strategy_breakdown(trades: Iterable[Trade]) -> list[StrategyStats]:
    """Full statistics per strategy tag, most traded first."""
    groups: dict[str, list[Trade]] = {}
    for t in closed_trades(trades):
        groups.setdefault(strategy_key(t.strategy), []).append(t)

    breakdown = [StrategyStats(strategy=name, stats=compute_stats(group)) for name, group in groups.items()]
    return sorted(breakdown, key=lambda s: (-s.stats.total_trades, s.strategy))
