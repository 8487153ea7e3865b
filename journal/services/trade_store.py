"""Trade Store: the single query contract over persisted trades.

Every read that feeds analytics or listings goes through `active_trades`, so
the soft-delete predicate lives in exactly one place.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from journal.errors import StoreWriteFailed
from journal.models.trade import Trade
from journal.schemas.trade import TradeFilters

logger = logging.getLogger(__name__)


class TradeStore:
    def __init__(self, session: Session):
        self.session = session

    def active_trades(
        self,
        user_id: int,
        closed_only: bool = False,
        filters: TradeFilters | None = None,
    ) -> list[Trade]:
        """Non-deleted trades for a user.

        closed_only restricts to trades with a realized P&L, ordered by
        closed_at ascending; otherwise ordered by opened_at, newest first.
        """
        stmt = select(Trade).where(Trade.user_id == user_id, Trade.deleted_at.is_(None))
        if closed_only:
            stmt = stmt.where(Trade.pnl.is_not(None)).order_by(Trade.closed_at, Trade.id)
        else:
            stmt = stmt.order_by(Trade.opened_at.desc(), Trade.id.desc())
        if filters is not None:
            stmt = _apply_filters(stmt, filters)
        return list(self.session.exec(stmt).all())

    def get(self, user_id: int, trade_id: int) -> Trade | None:
        """One non-deleted trade owned by user_id."""
        trade = self.session.get(Trade, trade_id)
        if trade is None or trade.user_id != user_id or trade.deleted_at is not None:
            return None
        return trade

    def existing_source_ids(self, user_id: int, source: str, candidate_ids: Iterable[str]) -> set[str]:
        """source_ids among candidate_ids already recorded for (user, source).

        Soft-deleted rows are included: a deleted synced fill still occupies its key.
        """
        candidates = list(set(candidate_ids))
        if not candidates:
            return set()
        stmt = select(Trade.source_id).where(
            Trade.user_id == user_id,
            Trade.source == source,
            Trade.source_id.in_(candidates),
        )
        return {sid for sid in self.session.exec(stmt).all() if sid is not None}

    def add(self, trade: Trade) -> Trade:
        try:
            self.session.add(trade)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise StoreWriteFailed(f"Failed to save trade: {e}") from e
        self.session.refresh(trade)
        return trade

    def insert_batch(self, trades: list[Trade]) -> int:
        """Insert all trades in one transaction. Either all land or none do."""
        if not trades:
            return 0
        try:
            self.session.add_all(trades)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Trade batch insert of {len(trades)} rows rejected: {e}")
            raise StoreWriteFailed(f"Failed to insert trades: {e}", details=str(e)) from e
        return len(trades)

    def update(self, trade: Trade, changes: dict) -> Trade:
        for key, value in changes.items():
            setattr(trade, key, value)
        trade.updated_at = datetime.now(timezone.utc)
        return self.add(trade)

    def soft_delete(self, trade: Trade) -> Trade:
        now = datetime.now(timezone.utc)
        trade.deleted_at = now
        trade.updated_at = now
        return self.add(trade)


def _apply_filters(stmt, filters: TradeFilters):
    if filters.symbol:
        stmt = stmt.where(Trade.symbol.ilike(f"%{filters.symbol}%"))
    if filters.direction:
        stmt = stmt.where(Trade.direction == filters.direction)
    if filters.strategy:
        stmt = stmt.where(Trade.strategy.ilike(f"%{filters.strategy}%"))
    if filters.exchange:
        stmt = stmt.where(Trade.exchange.ilike(f"%{filters.exchange}%"))
    if filters.source:
        stmt = stmt.where(Trade.source == filters.source)
    # Date bounds are inclusive calendar days on opened_at (UTC)
    if filters.date_from:
        start = datetime.combine(filters.date_from, datetime.min.time(), tzinfo=timezone.utc)
        stmt = stmt.where(Trade.opened_at >= start)
    if filters.date_to:
        end = datetime.combine(filters.date_to + timedelta(days=1), datetime.min.time(), tzinfo=timezone.utc)
        stmt = stmt.where(Trade.opened_at < end)
    return stmt
