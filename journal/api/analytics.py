"""Analytics API: P&L statistics, equity curve, breakdowns and calendar views."""

from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, Query

from journal.api.deps import get_current_user, get_trade_store
from journal.config import settings
from journal.models.user import User
from journal.services import calendar_pnl, stats
from journal.services.trade_store import TradeStore

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def _today():
    return datetime.now(ZoneInfo(settings.calendar_timezone)).date()


def _closed(user: User, store: TradeStore):
    return store.active_trades(user.id, closed_only=True)


def _by_day(user: User, store: TradeStore) -> calendar_pnl.DayBuckets:
    return calendar_pnl.group_by_day(_closed(user, store), tz=settings.calendar_timezone)


@router.get("/summary")
def summary(user: User = Depends(get_current_user), store: TradeStore = Depends(get_trade_store)):
    return stats.compute_stats(_closed(user, store)).to_dict()


@router.get("/cumulative")
def cumulative_pnl(user: User = Depends(get_current_user), store: TradeStore = Depends(get_trade_store)):
    return [
        {"closed_at": p.closed_at.isoformat() if p.closed_at else None, "pnl": p.pnl}
        for p in stats.compute_cumulative_pnl(_closed(user, store))
    ]


@router.get("/by-symbol")
def pnl_by_symbol(user: User = Depends(get_current_user), store: TradeStore = Depends(get_trade_store)):
    return stats.compute_pnl_by_symbol(_closed(user, store))


@router.get("/strategies")
def strategy_breakdown(user: User = Depends(get_current_user), store: TradeStore = Depends(get_trade_store)):
    return [s.to_dict() for s in stats.compute_strategy_breakdown(_closed(user, store))]


@router.get("/calendar/daily")
def calendar_daily(
    year: int | None = Query(default=None, ge=1970, le=9999),
    month: int | None = Query(default=None, ge=1, le=12),
    user: User = Depends(get_current_user),
    store: TradeStore = Depends(get_trade_store),
):
    today = _today()
    year = year or today.year
    month = month or today.month
    by_day = _by_day(user, store)
    return {
        "summary": calendar_pnl.month_summary(by_day, year, month).to_dict(),
        "days": [c.to_dict() for c in calendar_pnl.daily_view(by_day, year, month)],
    }


@router.get("/calendar/weekly")
def calendar_weekly(
    year: int | None = Query(default=None, ge=1970, le=9999),
    user: User = Depends(get_current_user),
    store: TradeStore = Depends(get_trade_store),
):
    year = year or _today().year
    return [c.to_dict() for c in calendar_pnl.weekly_view(_by_day(user, store), year)]


@router.get("/calendar/monthly")
def calendar_monthly(
    year: int | None = Query(default=None, ge=1970, le=9999),
    user: User = Depends(get_current_user),
    store: TradeStore = Depends(get_trade_store),
):
    year = year or _today().year
    return [c.to_dict() for c in calendar_pnl.monthly_view(_by_day(user, store), year)]


@router.get("/calendar/quarterly")
def calendar_quarterly(
    year: int | None = Query(default=None, ge=1970, le=9999),
    user: User = Depends(get_current_user),
    store: TradeStore = Depends(get_trade_store),
):
    year = year or _today().year
    return [c.to_dict() for c in calendar_pnl.quarterly_view(_by_day(user, store), year)]


@router.get("/calendar/yearly")
def calendar_yearly(user: User = Depends(get_current_user), store: TradeStore = Depends(get_trade_store)):
    by_day = _by_day(user, store)
    years = calendar_pnl.year_range(by_day, _today().year)
    return [c.to_dict() for c in calendar_pnl.yearly_view(by_day, years)]
