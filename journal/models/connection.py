"""ExchangeConnection model: a user's linked exchange account and sync state."""

from datetime import datetime, timezone

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field

from journal.utils.constants import DEFAULT_SYNC_PERIOD, SOURCE_HYPERLIQUID, SYNC_UNSYNCED


class ExchangeConnection(SQLModel, table=True):
    __tablename__ = "exchange_connection"
    __table_args__ = (UniqueConstraint("user_id", "exchange", name="uq_connection_user_exchange"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    exchange: str = SOURCE_HYPERLIQUID
    wallet_address: str
    sync_period: str = DEFAULT_SYNC_PERIOD  # "7d", "30d", "90d", "180d"
    last_synced_at: datetime | None = None  # only advanced by a successful sync
    sync_status: str = SYNC_UNSYNCED  # "unsynced", "syncing", "synced", "sync_error"
    last_error: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
