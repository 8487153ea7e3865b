"""Trade model: one journal entry, entered manually or synced from an exchange."""

from datetime import datetime, timezone

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field

from journal.utils.constants import SOURCE_MANUAL


class Trade(SQLModel, table=True):
    __tablename__ = "trade"
    __table_args__ = (
        # NULL source_id (manual trades) never collides
        UniqueConstraint("user_id", "source", "source_id", name="uq_trade_user_source_source_id"),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    symbol: str = Field(index=True)
    direction: str  # "long" or "short"
    entry_price: float
    exit_price: float | None = None  # None while the position is open
    size: float
    fees: float = 0.0
    pnl: float | None = None  # None until closed; excluded from analytics
    strategy: str | None = None
    exchange: str | None = None
    opened_at: datetime
    closed_at: datetime | None = None
    notes: str | None = None

    # Provenance
    source: str = SOURCE_MANUAL  # "manual" or exchange id, e.g. "hyperliquid"
    source_id: str | None = None  # venue fill id, the sync dedup key

    deleted_at: datetime | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
