"""Sync API: on-demand sync for the caller and the all-users trigger."""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from journal.api.deps import (
    get_connection_registry,
    get_current_user,
    get_hyperliquid_client,
    get_trade_store,
    require_cron_secret,
)
from journal.database import engine
from journal.engine.trade_sync import sync_all_connections, sync_user
from journal.errors import NoConnection, SyncFailed
from journal.models.user import User
from journal.services.connection_registry import ConnectionRegistry
from journal.services.hyperliquid_client import HyperliquidClient
from journal.services.trade_store import TradeStore

router = APIRouter(prefix="/api/sync", tags=["sync"])


def get_session_factory():
    """Factory handing each user of the all-users sync a fresh session."""
    return lambda: Session(engine)


@router.post("")
async def sync_me(
    user: User = Depends(get_current_user),
    store: TradeStore = Depends(get_trade_store),
    registry: ConnectionRegistry = Depends(get_connection_registry),
    client: HyperliquidClient = Depends(get_hyperliquid_client),
):
    try:
        result = await sync_user(user.id, store, registry, client)
    except NoConnection as e:
        raise HTTPException(status_code=404, detail=e.message)
    except SyncFailed as e:
        raise HTTPException(status_code=502, detail=e.message)
    return result.to_dict()


@router.post("/all", dependencies=[Depends(require_cron_secret)])
async def sync_everyone(
    session_factory=Depends(get_session_factory),
    client: HyperliquidClient = Depends(get_hyperliquid_client),
):
    results = await sync_all_connections(session_factory, client)
    return {"synced": len(results), "results": [r.to_dict() for r in results]}
