"""Exchange fill sync.

Pipeline for one user:
connection → fetch fills since the look-back start → validate → keep closing
fills → dedup against the journal → normalize → batch insert → mark synced.

The scheduled variant walks every registered connection sequentially; one
user's failure is recorded in that user's result and the walk continues.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, asdict
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from journal.engine.dedup import find_new_source_ids
from journal.engine.normalizer import normalize_fill
from journal.errors import NoConnection, SyncFailed
from journal.schemas.fill import RawFill
from journal.services.connection_registry import ConnectionRegistry
from journal.services.hyperliquid_client import HyperliquidClient
from journal.services.trade_store import TradeStore
from journal.utils.constants import DEFAULT_SYNC_PERIOD, SOURCE_HYPERLIQUID, SYNC_PERIODS
from journal.utils.dates import datetime_to_ms

logger = logging.getLogger(__name__)
_user_locks: dict[int, asyncio.Lock] = {}
_user_locks_guard = asyncio.Lock()


@dataclass
class SyncResult:
    inserted: int = 0
    skipped: int = 0  # closing fills already in the journal
    rejected: int = 0  # fills that failed validation

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserSyncResult:
    user_id: int
    inserted: int = 0
    skipped: int = 0
    rejected: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def sync_start_time(sync_period: str, now: datetime) -> datetime:
    """Earliest fill time covered by a connection's look-back window."""
    window = SYNC_PERIODS.get(sync_period)
    if window is None:
        logger.warning(f"Unknown sync period {sync_period!r}, using {DEFAULT_SYNC_PERIOD}")
        window = SYNC_PERIODS[DEFAULT_SYNC_PERIOD]
    return now - window


def parse_fills(raw_fills: list[dict]) -> tuple[list[RawFill], int]:
    """Validate raw fill dicts. Returns (valid fills, rejected count)."""
    fills: list[RawFill] = []
    rejected = 0
    for raw in raw_fills:
        try:
            fills.append(RawFill.model_validate(raw))
        except ValidationError as e:
            rejected += 1
            fill_id = raw.get("tid") if isinstance(raw, dict) else None
            logger.warning(
                f"Data quality: rejecting fill {fill_id}: "
                f"{e.error_count()} invalid field(s): {e.errors(include_url=False)}"
            )
    return fills, rejected


async def sync_user(
    user_id: int,
    trades: TradeStore,
    connections: ConnectionRegistry,
    client: HyperliquidClient,
    now: datetime | None = None,
) -> SyncResult:
    """Sync one user's exchange fills into the journal.

    Raises NoConnection if the user has no linked exchange, SyncFailed if the
    fetch or the insert fails. Runs for the same user are serialized.
    """
    lock = await _get_user_lock(user_id)
    async with lock:
        return await _sync_user_once(user_id, trades, connections, client, now)


async def _get_user_lock(user_id: int) -> asyncio.Lock:
    async with _user_locks_guard:
        lock = _user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            _user_locks[user_id] = lock
        return lock


async def _sync_user_once(
    user_id: int,
    trades: TradeStore,
    connections: ConnectionRegistry,
    client: HyperliquidClient,
    now: datetime | None,
) -> SyncResult:
    conn = connections.get(user_id)
    if conn is None:
        raise NoConnection(f"No Hyperliquid connection found for user {user_id}")

    now = now or datetime.now(timezone.utc)
    logger.info(f"[user_{user_id}] Sync starting (wallet={conn.wallet_address}, period={conn.sync_period})")

    try:
        connections.mark_syncing(conn)
        result = await _run_pipeline(user_id, conn.wallet_address, conn.sync_period, trades, client, now)
        connections.mark_synced(conn, now)
    except asyncio.CancelledError:
        # Scheduled budget cutoff or a dropped request
        logger.warning(f"[user_{user_id}] Sync cancelled")
        _record_failure(connections, conn, user_id, "sync cancelled")
        raise
    except Exception as e:
        message = str(e) or type(e).__name__
        logger.error(f"[user_{user_id}] Sync failed: {message}")
        _record_failure(connections, conn, user_id, message)
        raise SyncFailed(f"Sync failed for user {user_id}: {message}", cause=e) from e

    logger.info(
        f"[user_{user_id}] Sync complete: inserted={result.inserted} "
        f"skipped={result.skipped} rejected={result.rejected}"
    )
    return result


def _record_failure(connections: ConnectionRegistry, conn, user_id: int, message: str):
    try:
        connections.mark_failed(conn, message)
    except SQLAlchemyError as store_error:
        logger.error(f"[user_{user_id}] Could not record sync failure: {store_error}")


async def _run_pipeline(
    user_id: int,
    wallet: str,
    sync_period: str,
    trades: TradeStore,
    client: HyperliquidClient,
    now: datetime,
) -> SyncResult:
    start = sync_start_time(sync_period, now)
    raw_fills = await client.fetch_fills(wallet, start_time_ms=datetime_to_ms(start))
    fills, rejected = parse_fills(raw_fills)

    # Only closing fills realize P&L; a fill id seen twice in one batch counts once
    closing: dict[str, RawFill] = {}
    for fill in fills:
        if fill.is_closing:
            closing.setdefault(fill.source_id, fill)

    if not closing:
        return SyncResult(rejected=rejected)

    new_ids = find_new_source_ids(trades, user_id, SOURCE_HYPERLIQUID, closing.keys())
    new_trades = [normalize_fill(fill, user_id) for sid, fill in closing.items() if sid in new_ids]
    inserted = trades.insert_batch(new_trades)

    return SyncResult(inserted=inserted, skipped=len(closing) - inserted, rejected=rejected)


async def sync_all_connections(
    session_factory: Callable[[], Session],
    client: HyperliquidClient,
    now: datetime | None = None,
) -> list[UserSyncResult]:
    """Sync every registered connection, one at a time, isolating failures."""
    with session_factory() as session:
        user_ids = [conn.user_id for conn in ConnectionRegistry(session).all()]

    logger.info(f"Scheduled sync: {len(user_ids)} connections")
    results: list[UserSyncResult] = []
    for user_id in user_ids:
        with session_factory() as session:
            try:
                result = await sync_user(
                    user_id, TradeStore(session), ConnectionRegistry(session), client, now=now
                )
                results.append(UserSyncResult(user_id=user_id, **result.to_dict()))
            except Exception as e:
                logger.error(f"Scheduled sync: user {user_id} failed: {e}")
                results.append(UserSyncResult(user_id=user_id, error=str(e) or type(e).__name__))

    failed = sum(1 for r in results if r.error)
    logger.info(f"Scheduled sync finished: {len(results) - failed} ok, {failed} failed")
    return results
