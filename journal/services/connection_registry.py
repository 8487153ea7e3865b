"""Connection Registry: per-user exchange links and their sync state."""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from journal.models.connection import ExchangeConnection
from journal.utils.constants import (
    SOURCE_HYPERLIQUID,
    SYNC_ERROR,
    SYNC_OK,
    SYNC_RUNNING,
    SYNC_UNSYNCED,
)

logger = logging.getLogger(__name__)

# Error text kept on the row is truncated to this length
MAX_ERROR_LENGTH = 500


class ConnectionRegistry:
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: int, exchange: str = SOURCE_HYPERLIQUID) -> ExchangeConnection | None:
        return self.session.exec(
            select(ExchangeConnection).where(
                ExchangeConnection.user_id == user_id,
                ExchangeConnection.exchange == exchange,
            )
        ).first()

    def all(self) -> list[ExchangeConnection]:
        return list(self.session.exec(select(ExchangeConnection).order_by(ExchangeConnection.id)).all())

    def connect(
        self,
        user_id: int,
        wallet_address: str,
        sync_period: str,
        exchange: str = SOURCE_HYPERLIQUID,
    ) -> ExchangeConnection:
        """Create the user's link, or repoint an existing one."""
        conn = self.get(user_id, exchange)
        if conn is None:
            conn = ExchangeConnection(
                user_id=user_id,
                exchange=exchange,
                wallet_address=wallet_address,
                sync_period=sync_period,
            )
            logger.info(f"User {user_id} connected {exchange} wallet {wallet_address}")
        else:
            if conn.wallet_address != wallet_address:
                # New account: its history has never been synced
                conn.last_synced_at = None
                conn.sync_status = SYNC_UNSYNCED
                conn.last_error = None
            conn.wallet_address = wallet_address
            conn.sync_period = sync_period
        self.session.add(conn)
        self.session.commit()
        self.session.refresh(conn)
        return conn

    def disconnect(self, user_id: int, exchange: str = SOURCE_HYPERLIQUID) -> bool:
        """Remove the link. Synced trades stay in the journal."""
        conn = self.get(user_id, exchange)
        if conn is None:
            return False
        self.session.delete(conn)
        self.session.commit()
        logger.info(f"User {user_id} disconnected {exchange}")
        return True

    def mark_syncing(self, conn: ExchangeConnection):
        conn.sync_status = SYNC_RUNNING
        self._save(conn)

    def mark_synced(self, conn: ExchangeConnection, synced_at: datetime):
        conn.sync_status = SYNC_OK
        conn.last_synced_at = synced_at
        conn.last_error = None
        self._save(conn)

    def mark_failed(self, conn: ExchangeConnection, error: str):
        """Record a failed attempt. last_synced_at is left untouched."""
        conn.sync_status = SYNC_ERROR
        conn.last_error = error[:MAX_ERROR_LENGTH]
        self._save(conn)

    def _save(self, conn: ExchangeConnection):
        try:
            self.session.add(conn)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        self.session.refresh(conn)
