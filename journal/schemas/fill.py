"""RawFill: one fill as reported by the Hyperliquid userFills endpoint.

The venue sends prices, sizes and P&L as decimal strings. They are parsed to
finite floats here, once; a fill that fails validation never reaches the
normalizer.
"""

from pydantic import BaseModel, ConfigDict, Field


class RawFill(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    coin: str = Field(min_length=1)
    px: float = Field(allow_inf_nan=False)
    sz: float = Field(ge=0, allow_inf_nan=False)
    side: str  # "B" (bid/buy) or "A" (ask/sell)
    time: int = Field(ge=0)  # ms epoch
    fee: float = Field(default=0.0, allow_inf_nan=False)  # negative for maker rebates
    closed_pnl: float = Field(default=0.0, alias="closedPnl", allow_inf_nan=False)
    dir: str  # "Open Long", "Close Short", "Long > Short", ...
    hash: str | None = None
    tid: int | str  # trade id, stable across fetches
    oid: int | None = None
    crossed: bool = False
    fee_token: str | None = Field(default=None, alias="feeToken")
    builder_fee: float | None = Field(default=None, alias="builderFee", allow_inf_nan=False)

    @property
    def source_id(self) -> str:
        return str(self.tid)

    @property
    def is_closing(self) -> bool:
        return self.dir.startswith("Close")
