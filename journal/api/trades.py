"""Trade journal API: list, manual entry, edit, soft delete."""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from journal.api.deps import get_current_user, get_trade_store
from journal.errors import StoreWriteFailed
from journal.models.trade import Trade
from journal.models.user import User
from journal.schemas.trade import Direction, TradeCreate, TradeFilters, TradeRead, TradeUpdate
from journal.services.trade_store import TradeStore
from journal.utils.constants import SOURCE_MANUAL

router = APIRouter(prefix="/api/trades", tags=["trades"])


@router.get("", response_model=list[TradeRead])
def list_trades(
    symbol: str | None = None,
    direction: Direction | None = None,
    strategy: str | None = None,
    exchange: str | None = None,
    source: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 100,
    offset: int = 0,
    user: User = Depends(get_current_user),
    store: TradeStore = Depends(get_trade_store),
):
    filters = TradeFilters(
        symbol=symbol,
        direction=direction,
        strategy=strategy,
        exchange=exchange,
        source=source,
        date_from=date_from,
        date_to=date_to,
    )
    trades = store.active_trades(user.id, filters=filters)
    return trades[offset:offset + limit]


@router.post("", response_model=TradeRead, status_code=201)
def create_trade(
    data: TradeCreate,
    user: User = Depends(get_current_user),
    store: TradeStore = Depends(get_trade_store),
):
    trade = Trade(user_id=user.id, source=SOURCE_MANUAL, **data.model_dump())
    try:
        return store.add(trade)
    except StoreWriteFailed as e:
        raise HTTPException(status_code=409, detail=e.message)


@router.get("/{trade_id}", response_model=TradeRead)
def get_trade(
    trade_id: int,
    user: User = Depends(get_current_user),
    store: TradeStore = Depends(get_trade_store),
):
    trade = store.get(user.id, trade_id)
    if not trade:
        raise HTTPException(status_code=404, detail="Trade not found")
    return trade


@router.put("/{trade_id}", response_model=TradeRead)
def update_trade(
    trade_id: int,
    data: TradeUpdate,
    user: User = Depends(get_current_user),
    store: TradeStore = Depends(get_trade_store),
):
    trade = store.get(user.id, trade_id)
    if not trade:
        raise HTTPException(status_code=404, detail="Trade not found")
    if trade.source != SOURCE_MANUAL:
        raise HTTPException(status_code=409, detail="Synced trades are read-only")

    update_data = data.model_dump(exclude_unset=True)

    # Validate the full merged trade so partial updates cannot bypass cross-field rules.
    merged = {**trade.model_dump(), **update_data}
    if "pnl" not in update_data and {"entry_price", "exit_price", "size", "fees", "direction"} & update_data.keys():
        merged["pnl"] = None  # re-derive from the new prices
    try:
        validated = TradeCreate.model_validate(merged)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False, include_input=False),
        )

    changes = validated.model_dump()
    try:
        return store.update(trade, changes)
    except StoreWriteFailed as e:
        raise HTTPException(status_code=409, detail=e.message)


@router.delete("/{trade_id}", status_code=204)
def delete_trade(
    trade_id: int,
    user: User = Depends(get_current_user),
    store: TradeStore = Depends(get_trade_store),
):
    trade = store.get(user.id, trade_id)
    if not trade:
        raise HTTPException(status_code=404, detail="Trade not found")
    store.soft_delete(trade)
