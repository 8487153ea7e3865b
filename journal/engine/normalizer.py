"""Fill normalization: one Hyperliquid fill into one journal Trade.

Pure: no I/O, no database access. A closing fill reports the exit price,
size and realized P&L but not the entry, so the entry is solved from

    long:  pnl = (exit - entry) * size
    short: pnl = (entry - exit) * size
"""

import logging

from journal.errors import DataQuality
from journal.models.trade import Trade
from journal.schemas.fill import RawFill
from journal.utils.constants import EXCHANGE_HYPERLIQUID, SOURCE_HYPERLIQUID
from journal.utils.dates import ms_to_datetime

logger = logging.getLogger(__name__)


def fill_direction(fill: RawFill) -> str:
    return "long" if "Long" in fill.dir else "short"


def derive_entry_price(direction: str, exit_price: float, size: float, pnl: float) -> float:
    """Back out the average entry price from a closing fill.

    Zero size cannot be solved; the exit price is returned instead and the
    caller is expected to flag the fill.
    """
    if size == 0:
        return exit_price
    if direction == "long":
        return exit_price - pnl / size
    return exit_price + pnl / size


def fill_quality_issue(fill: RawFill) -> DataQuality | None:
    """Flag a closing fill whose entry price cannot be derived. The sync logs it and carries on."""
    if fill.is_closing and fill.sz == 0:
        return DataQuality(
            f"fill {fill.source_id} ({fill.coin}) has zero size",
            details={"tid": fill.tid, "px": fill.px},
        )
    return None


def normalize_fill(fill: RawFill, user_id: int) -> Trade:
    """Map one fill to a Trade candidate owned by user_id."""
    direction = fill_direction(fill)
    executed_at = ms_to_datetime(fill.time)

    if fill.is_closing:
        issue = fill_quality_issue(fill)
        if issue is not None:
            logger.warning(f"Data quality: {issue.message}, entry price defaults to exit {fill.px}")
        entry_price = derive_entry_price(direction, fill.px, fill.sz, fill.closed_pnl)
        exit_price = fill.px
        pnl = fill.closed_pnl
        closed_at = executed_at
    else:
        entry_price = fill.px
        exit_price = None
        pnl = None
        closed_at = None

    return Trade(
        user_id=user_id,
        symbol=fill.coin,
        direction=direction,
        entry_price=entry_price,
        exit_price=exit_price,
        size=fill.sz,
        fees=fill.fee,
        pnl=pnl,
        exchange=EXCHANGE_HYPERLIQUID,
        opened_at=executed_at,
        closed_at=closed_at,
        source=SOURCE_HYPERLIQUID,
        source_id=fill.source_id,
    )
