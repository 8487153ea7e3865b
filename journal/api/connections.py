"""Exchange connection API: link, inspect and unlink the caller's Hyperliquid wallet."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from journal.api.deps import get_connection_registry, get_current_user, get_hyperliquid_client
from journal.errors import RemoteUnavailable
from journal.models.user import User
from journal.schemas.connection import ConnectionRead, ConnectionUpsert
from journal.services.connection_registry import ConnectionRegistry
from journal.services.hyperliquid_client import HyperliquidClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/connections", tags=["connections"])


@router.get("", response_model=ConnectionRead)
def get_connection(
    user: User = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_connection_registry),
):
    conn = registry.get(user.id)
    if not conn:
        raise HTTPException(status_code=404, detail="No Hyperliquid connection found")
    return conn


@router.put("", response_model=ConnectionRead)
def upsert_connection(
    data: ConnectionUpsert,
    user: User = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_connection_registry),
):
    return registry.connect(user.id, data.wallet_address, data.sync_period)


@router.delete("", status_code=204)
def delete_connection(
    user: User = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_connection_registry),
):
    if not registry.disconnect(user.id):
        raise HTTPException(status_code=404, detail="No Hyperliquid connection found")


@router.get("/account")
async def account_state(
    user: User = Depends(get_current_user),
    registry: ConnectionRegistry = Depends(get_connection_registry),
    client: HyperliquidClient = Depends(get_hyperliquid_client),
):
    """Live account value and unrealized P&L for the linked wallet."""
    conn = registry.get(user.id)
    if not conn:
        return {"connected": False}
    try:
        state = await client.fetch_account_state(conn.wallet_address)
    except RemoteUnavailable as e:
        logger.warning(f"Could not fetch account state for user {user.id}: {e}")
        raise HTTPException(status_code=502, detail=e.message)
    return {
        "connected": True,
        "account_value": state.account_value,
        "unrealized_pnl": state.unrealized_pnl,
    }
