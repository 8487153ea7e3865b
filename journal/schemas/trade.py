"""Pydantic schemas for the Trade API."""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from journal.utils.dates import as_utc

Direction = Literal["long", "short"]


def _optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    return text or None


def _compute_pnl(direction: str, entry: float, exit_: float, size: float, fees: float) -> float:
    """Realized P&L net of fees, rounded to cents."""
    raw = (exit_ - entry) * size if direction == "long" else (entry - exit_) * size
    return round(raw - fees, 2)


class TradeCreate(BaseModel):
    symbol: str = Field(min_length=1, max_length=32)
    direction: Direction
    entry_price: float = Field(gt=0, allow_inf_nan=False)
    exit_price: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    size: float = Field(gt=0, allow_inf_nan=False)
    fees: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    pnl: float | None = Field(default=None, allow_inf_nan=False)
    strategy: str | None = Field(default=None, max_length=120)
    exchange: str | None = Field(default=None, max_length=64)
    opened_at: datetime
    closed_at: datetime | None = None
    notes: str | None = None

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        text = value.strip().upper()
        if not text:
            raise ValueError("must not be empty")
        return text

    @field_validator("strategy", "exchange", "notes")
    @classmethod
    def _trim_optional_text(cls, value: str | None) -> str | None:
        return _optional_text(value)

    @model_validator(mode="after")
    def _validate_close(self):
        if self.closed_at is not None and as_utc(self.closed_at) < as_utc(self.opened_at):
            raise ValueError("closed_at must not be before opened_at")
        # Derive P&L when the exit is known but no P&L was given
        if self.pnl is None and self.exit_price is not None:
            self.pnl = _compute_pnl(self.direction, self.entry_price, self.exit_price, self.size, self.fees)
        return self


class TradeUpdate(BaseModel):
    symbol: str | None = Field(default=None, min_length=1, max_length=32)
    direction: Direction | None = None
    entry_price: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    exit_price: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    size: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    fees: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    pnl: float | None = Field(default=None, allow_inf_nan=False)
    strategy: str | None = Field(default=None, max_length=120)
    exchange: str | None = Field(default=None, max_length=64)
    opened_at: datetime | None = None
    closed_at: datetime | None = None
    notes: str | None = None


class TradeRead(BaseModel):
    id: int
    symbol: str
    direction: str
    entry_price: float
    exit_price: float | None
    size: float
    fees: float
    pnl: float | None
    strategy: str | None
    exchange: str | None
    opened_at: datetime
    closed_at: datetime | None
    notes: str | None
    source: str
    source_id: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TradeFilters(BaseModel):
    """Listing filters. Text filters are case-insensitive substring matches."""

    symbol: str | None = None
    direction: Direction | None = None
    strategy: str | None = None
    exchange: str | None = None
    source: str | None = None
    date_from: date | None = None  # inclusive, on opened_at
    date_to: date | None = None  # inclusive, on opened_at

    @field_validator("symbol", "strategy", "exchange", "source")
    @classmethod
    def _blank_is_none(cls, value: str | None) -> str | None:
        return _optional_text(value)
