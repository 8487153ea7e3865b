"""Shared API dependencies."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session

from journal.database import get_session
from journal.models.user import User
from journal.services.auth import user_id_from_token, verify_cron_secret
from journal.services.connection_registry import ConnectionRegistry
from journal.services.hyperliquid_client import HyperliquidClient
from journal.services.trade_store import TradeStore

bearer_scheme = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User:
    """Validate JWT and return the current user."""
    user_id = user_id_from_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    user = session.get(User, user_id)
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def require_cron_secret(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)):
    """Guard for the all-users sync trigger."""
    if not verify_cron_secret(credentials.credentials):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def get_trade_store(session: Session = Depends(get_session)) -> TradeStore:
    return TradeStore(session)


def get_connection_registry(session: Session = Depends(get_session)) -> ConnectionRegistry:
    return ConnectionRegistry(session)


async def get_hyperliquid_client():
    """Per-request Hyperliquid client, closed after the response."""
    client = HyperliquidClient()
    try:
        yield client
    finally:
        await client.close()
