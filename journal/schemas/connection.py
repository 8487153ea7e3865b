"""Pydantic schemas for the exchange connection API."""

import re
from datetime import datetime

from pydantic import BaseModel, field_validator

from journal.utils.constants import DEFAULT_SYNC_PERIOD, SYNC_PERIODS

_WALLET_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class ConnectionUpsert(BaseModel):
    wallet_address: str
    sync_period: str = DEFAULT_SYNC_PERIOD

    @field_validator("wallet_address")
    @classmethod
    def _validate_wallet(cls, value: str) -> str:
        wallet = value.strip()
        if not _WALLET_RE.fullmatch(wallet):
            raise ValueError("must be a 0x-prefixed 40 hex character address")
        return wallet.lower()

    @field_validator("sync_period")
    @classmethod
    def _validate_period(cls, value: str) -> str:
        if value not in SYNC_PERIODS:
            allowed = ", ".join(SYNC_PERIODS)
            raise ValueError(f"must be one of: {allowed}")
        return value


class ConnectionRead(BaseModel):
    id: int
    exchange: str
    wallet_address: str
    sync_period: str
    sync_status: str
    last_synced_at: datetime | None
    last_error: str | None
    created_at: datetime

    model_config = {"from_attributes": True}
