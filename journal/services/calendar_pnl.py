"""Calendar P&L: day buckets and their week/month/quarter/year roll-ups.

Trades are bucketed by the local calendar date of closed_at. Every coarser
view is built only from day buckets, so a month always equals the sum of its
days and a year the sum of its months.

Each view carries a heat intensity per cell, relative to the largest absolute
P&L among the cells with trades in that same view:

    intensity = HEAT_MIN + min(|pnl| / max_abs, 1) * HEAT_SPAN

No intensity is given when the cell has no trades or max_abs is 0.
"""

import calendar
import math
from collections.abc import Iterable
from dataclasses import dataclass, field, asdict
from datetime import date, timedelta
from zoneinfo import ZoneInfo

import pandas as pd

from journal.models.trade import Trade
from journal.utils.constants import HEAT_MIN, HEAT_SPAN
from journal.utils.dates import as_utc

QUARTER_MONTHS = ((1, 2, 3), (4, 5, 6), (7, 8, 9), (10, 11, 12))


@dataclass
class Bucket:
    pnl: float = 0.0
    count: int = 0

    def add(self, other: "Bucket"):
        self.pnl += other.pnl
        self.count += other.count


@dataclass
class CalendarCell:
    key: str  # "2024-03-05", "2024-W10", "2024-03", "2024-Q1", "2024"
    start: date
    end: date  # inclusive
    pnl: float
    count: int
    intensity: float | None = None
    tone: str | None = None  # "gain" or "loss"
    children: list["CalendarCell"] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MonthSummary:
    year: int
    month: int
    pnl: float
    count: int
    win_days: int
    trading_days: int
    win_rate: int  # whole percent, 0 when there were no trading days

    def to_dict(self) -> dict:
        return asdict(self)


DayBuckets = dict[date, Bucket]


def group_by_day(trades: Iterable[Trade], tz: str = "UTC") -> DayBuckets:
    """Sum P&L and count trades per local closing date."""
    zone = ZoneInfo(tz)
    closed = [t for t in trades if t.pnl is not None and t.closed_at is not None]
    if not closed:
        return {}

    frame = pd.DataFrame({
        "day": [as_utc(t.closed_at).astimezone(zone).date() for t in closed],
        "pnl": [t.pnl for t in closed],
    })
    grouped = frame.groupby("day", sort=True)["pnl"].agg(["sum", "size"])
    return {day: Bucket(pnl=float(total), count=int(size)) for day, total, size in grouped.itertuples()}


def heat_intensity(pnl: float, max_abs: float) -> float | None:
    if max_abs == 0:
        return None
    ratio = min(abs(pnl) / max_abs, 1.0)
    return round(HEAT_MIN + ratio * HEAT_SPAN, 3)


def max_abs_of(cells: Iterable[CalendarCell]) -> float:
    return max((abs(c.pnl) for c in cells if c.count > 0), default=0.0)


def _apply_heat(cells: list[CalendarCell]) -> list[CalendarCell]:
    max_abs = max_abs_of(cells)
    for cell in cells:
        if cell.count > 0:
            cell.intensity = heat_intensity(cell.pnl, max_abs)
            cell.tone = "gain" if cell.pnl > 0 else "loss"
    return cells


def _sum_days(by_day: DayBuckets, start: date, end: date) -> Bucket:
    total = Bucket()
    day = start
    while day <= end:
        bucket = by_day.get(day)
        if bucket is not None:
            total.add(bucket)
        day += timedelta(days=1)
    return total


def _month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def month_bucket(by_day: DayBuckets, year: int, month: int) -> Bucket:
    return _sum_days(by_day, *_month_bounds(year, month))


def _month_cell(by_day: DayBuckets, year: int, month: int) -> CalendarCell:
    start, end = _month_bounds(year, month)
    bucket = _sum_days(by_day, start, end)
    return CalendarCell(key=f"{year}-{month:02d}", start=start, end=end, pnl=bucket.pnl, count=bucket.count)


def _rollup(key: str, children: list[CalendarCell]) -> CalendarCell:
    total = Bucket()
    for child in children:
        total.add(Bucket(child.pnl, child.count))
    return CalendarCell(
        key=key,
        start=children[0].start,
        end=children[-1].end,
        pnl=total.pnl,
        count=total.count,
        children=_apply_heat(children),
    )


def daily_view(by_day: DayBuckets, year: int, month: int) -> list[CalendarCell]:
    """One cell per day of the month."""
    start, end = _month_bounds(year, month)
    cells = []
    day = start
    while day <= end:
        bucket = by_day.get(day, Bucket())
        cells.append(CalendarCell(key=day.isoformat(), start=day, end=day, pnl=bucket.pnl, count=bucket.count))
        day += timedelta(days=1)
    return _apply_heat(cells)


def weekly_view(by_day: DayBuckets, year: int) -> list[CalendarCell]:
    """Consecutive 7-day weeks from January 1; the last week stops at December 31."""
    year_end = date(year, 12, 31)
    cells = []
    start = date(year, 1, 1)
    week = 1
    while start <= year_end:
        end = min(start + timedelta(days=6), year_end)
        bucket = _sum_days(by_day, start, end)
        cells.append(CalendarCell(key=f"{year}-W{week:02d}", start=start, end=end, pnl=bucket.pnl, count=bucket.count))
        start = end + timedelta(days=1)
        week += 1
    return _apply_heat(cells)


def monthly_view(by_day: DayBuckets, year: int) -> list[CalendarCell]:
    return _apply_heat([_month_cell(by_day, year, m) for m in range(1, 13)])


def quarterly_view(by_day: DayBuckets, year: int) -> list[CalendarCell]:
    """Four quarters, each with its three months heat-scaled among themselves."""
    quarters = [
        _rollup(f"{year}-Q{qi}", [_month_cell(by_day, year, m) for m in months])
        for qi, months in enumerate(QUARTER_MONTHS, start=1)
    ]
    return _apply_heat(quarters)


def year_range(by_day: DayBuckets, current_year: int) -> list[int]:
    """Years to show: from the earliest traded year (at least last year) to current_year."""
    first = min((d.year for d in by_day), default=current_year)
    return list(range(min(first, current_year - 1), current_year + 1))


def yearly_view(by_day: DayBuckets, years: Iterable[int]) -> list[CalendarCell]:
    """One cell per year, each with its twelve months heat-scaled among themselves."""
    cells = [
        _rollup(str(year), [_month_cell(by_day, year, m) for m in range(1, 13)])
        for year in years
    ]
    return _apply_heat(cells)


def month_summary(by_day: DayBuckets, year: int, month: int) -> MonthSummary:
    """Header stats for the daily view. A win day has summed P&L > 0."""
    start, end = _month_bounds(year, month)
    total = Bucket()
    win_days = 0
    trading_days = 0
    day = start
    while day <= end:
        bucket = by_day.get(day)
        if bucket is not None and bucket.count > 0:
            total.add(bucket)
            trading_days += 1
            if bucket.pnl > 0:
                win_days += 1
        day += timedelta(days=1)

    win_rate = math.floor(win_days / trading_days * 100 + 0.5) if trading_days else 0
    return MonthSummary(
        year=year,
        month=month,
        pnl=total.pnl,
        count=total.count,
        win_days=win_days,
        trading_days=trading_days,
        win_rate=win_rate,
    )
