"""Tests for the exchange sync pipeline."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from journal.engine.dedup import find_new_source_ids
from journal.engine.trade_sync import parse_fills, sync_all_connections, sync_start_time, sync_user
from journal.errors import NoConnection, RemoteUnavailable, StoreWriteFailed, SyncFailed
from journal.models.connection import ExchangeConnection
from journal.models.trade import Trade
from journal.services.connection_registry import ConnectionRegistry
from journal.services.trade_store import TradeStore
from journal.utils.dates import as_utc, datetime_to_ms

from conftest import T0, WALLET_A, WALLET_B, FakeFillsClient, make_fill


def _stores(session):
    return TradeStore(session), ConnectionRegistry(session)


def _trades_for(session, user_id):
    return session.exec(select(Trade).where(Trade.user_id == user_id)).all()


# ---------------------------------------------------------------------------
# 1. Single-user sync
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_first_sync_inserts_closing_fill(session, user, connection, now):
    client = FakeFillsClient({WALLET_A: [make_fill(1)]})
    trades, connections = _stores(session)

    result = await sync_user(user.id, trades, connections, client, now=now)

    assert (result.inserted, result.skipped) == (1, 0)
    [trade] = _trades_for(session, user.id)
    assert trade.direction == "long"
    assert trade.exit_price == 50000
    assert trade.entry_price == 49500
    assert trade.pnl == 500
    assert trade.source_id == "1"


@pytest.mark.asyncio
async def test_second_sync_skips_everything(session, user, connection, now):
    fills = [make_fill(i, time=T0 + i) for i in range(1, 4)]
    fills.append(make_fill(99, dir="Open Long", closed_pnl="0"))
    client = FakeFillsClient({WALLET_A: fills})
    trades, connections = _stores(session)

    first = await sync_user(user.id, trades, connections, client, now=now)
    second = await sync_user(user.id, trades, connections, client, now=now)

    assert (first.inserted, first.skipped) == (3, 0)
    assert (second.inserted, second.skipped) == (0, 3)
    assert len(_trades_for(session, user.id)) == 3


@pytest.mark.asyncio
async def test_only_new_fills_inserted_on_resync(session, user, connection, now):
    client = FakeFillsClient({WALLET_A: [make_fill(1), make_fill(2)]})
    trades, connections = _stores(session)
    await sync_user(user.id, trades, connections, client, now=now)

    client.fills_by_wallet[WALLET_A].append(make_fill(3))
    result = await sync_user(user.id, trades, connections, client, now=now)

    assert (result.inserted, result.skipped) == (1, 2)


@pytest.mark.asyncio
async def test_duplicate_tid_in_one_batch_counts_once(session, user, connection, now):
    client = FakeFillsClient({WALLET_A: [make_fill(1), make_fill(1)]})
    result = await sync_user(user.id, *_stores(session), client, now=now)
    assert (result.inserted, result.skipped) == (1, 0)


@pytest.mark.asyncio
async def test_sync_marks_connection_synced(session, user, connection, now):
    client = FakeFillsClient({WALLET_A: []})
    await sync_user(user.id, *_stores(session), client, now=now)

    session.refresh(connection)
    assert connection.sync_status == "synced"
    assert as_utc(connection.last_synced_at) == now
    assert connection.last_error is None


@pytest.mark.asyncio
async def test_fetch_bounded_by_sync_period(session, user, connection, now):
    connection.sync_period = "7d"
    session.add(connection)
    session.commit()
    client = FakeFillsClient({WALLET_A: []})

    await sync_user(user.id, *_stores(session), client, now=now)

    assert client.calls == [(WALLET_A, datetime_to_ms(now - timedelta(days=7)))]


def test_unknown_sync_period_falls_back_to_30_days(now):
    assert sync_start_time("5y", now) == now - timedelta(days=30)


@pytest.mark.asyncio
async def test_no_connection(session, user):
    with pytest.raises(NoConnection):
        await sync_user(user.id, *_stores(session), FakeFillsClient())


@pytest.mark.asyncio
async def test_fetch_failure_wraps_and_records(session, user, connection, now):
    client = FakeFillsClient(failing_wallets={WALLET_A})

    with pytest.raises(SyncFailed) as exc_info:
        await sync_user(user.id, *_stores(session), client, now=now)

    assert isinstance(exc_info.value.cause, RemoteUnavailable)
    session.refresh(connection)
    assert connection.sync_status == "sync_error"
    assert "500" in connection.last_error
    assert connection.last_synced_at is None
    assert _trades_for(session, user.id) == []


@pytest.mark.asyncio
async def test_failed_sync_is_retryable(session, user, connection, now):
    client = FakeFillsClient({WALLET_A: [make_fill(1)]}, failing_wallets={WALLET_A})
    with pytest.raises(SyncFailed):
        await sync_user(user.id, *_stores(session), client, now=now)

    client.failing_wallets.clear()
    result = await sync_user(user.id, *_stores(session), client, now=now)

    assert result.inserted == 1
    session.refresh(connection)
    assert connection.sync_status == "synced"


@pytest.mark.asyncio
async def test_status_write_failure_is_sync_failed(session, user, connection, now):
    client = FakeFillsClient({WALLET_A: [make_fill(1)]})

    with patch.object(ConnectionRegistry, "mark_synced", side_effect=SQLAlchemyError("database is locked")):
        with pytest.raises(SyncFailed) as exc_info:
            await sync_user(user.id, *_stores(session), client, now=now)

    assert isinstance(exc_info.value.cause, SQLAlchemyError)
    session.refresh(connection)
    assert connection.sync_status == "sync_error"
    assert "database is locked" in connection.last_error


@pytest.mark.asyncio
async def test_mark_syncing_failure_is_sync_failed(session, user, connection, now):
    with patch.object(ConnectionRegistry, "mark_syncing", side_effect=SQLAlchemyError("disk I/O error")):
        with pytest.raises(SyncFailed):
            await sync_user(user.id, *_stores(session), FakeFillsClient(), now=now)

    session.refresh(connection)
    assert connection.sync_status == "sync_error"


# ---------------------------------------------------------------------------
# 2. Data quality
# ---------------------------------------------------------------------------

def test_parse_fills_counts_rejects():
    fills, rejected = parse_fills([make_fill(1), make_fill(2, px="oops"), make_fill(3, sz="inf")])
    assert [f.source_id for f in fills] == ["1"]
    assert rejected == 2


@pytest.mark.asyncio
async def test_malformed_fill_does_not_abort_batch(session, user, connection, now):
    client = FakeFillsClient({WALLET_A: [make_fill(1), make_fill(2, closed_pnl="??"), make_fill(3)]})

    result = await sync_user(user.id, *_stores(session), client, now=now)

    assert (result.inserted, result.skipped, result.rejected) == (2, 0, 1)


@pytest.mark.asyncio
async def test_zero_size_fill_still_inserted(session, user, connection, now):
    client = FakeFillsClient({WALLET_A: [make_fill(1, sz="0")]})
    result = await sync_user(user.id, *_stores(session), client, now=now)
    assert result.inserted == 1
    [trade] = _trades_for(session, user.id)
    assert trade.entry_price == trade.exit_price


# ---------------------------------------------------------------------------
# 3. Dedup and soft delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_soft_deleted_fill_not_resurrected(session, user, connection, now):
    client = FakeFillsClient({WALLET_A: [make_fill(1), make_fill(2)]})
    trades, connections = _stores(session)
    await sync_user(user.id, trades, connections, client, now=now)

    deleted = session.exec(select(Trade).where(Trade.source_id == "1")).one()
    trades.soft_delete(deleted)

    result = await sync_user(user.id, trades, connections, client, now=now)

    assert (result.inserted, result.skipped) == (0, 2)
    assert [t.source_id for t in trades.active_trades(user.id)] == ["2"]


def test_dedup_scoped_to_user_and_source(session, user, other_user):
    store = TradeStore(session)
    store.insert_batch([
        Trade(user_id=other_user.id, symbol="BTC", direction="long", entry_price=1, size=1,
              opened_at=datetime.now(timezone.utc), source="hyperliquid", source_id="1"),
        Trade(user_id=user.id, symbol="BTC", direction="long", entry_price=1, size=1,
              opened_at=datetime.now(timezone.utc), source="other", source_id="2"),
    ])

    assert find_new_source_ids(store, user.id, "hyperliquid", ["1", "2", "3"]) == {"1", "2", "3"}
    assert find_new_source_ids(store, other_user.id, "hyperliquid", ["1", "2"]) == {"2"}


@pytest.mark.asyncio
async def test_rejected_insert_credits_nothing(session, user, connection, now):
    """A racing writer already stored fill 1; the unique index rejects the whole batch."""
    trades, connections = _stores(session)
    await sync_user(user.id, trades, connections, FakeFillsClient({WALLET_A: [make_fill(1)]}), now=now)

    client = FakeFillsClient({WALLET_A: [make_fill(1), make_fill(2)]})
    with patch.object(TradeStore, "existing_source_ids", return_value=set()):
        with pytest.raises(SyncFailed) as exc_info:
            await sync_user(user.id, trades, connections, client, now=now + timedelta(hours=1))

    assert isinstance(exc_info.value.cause, StoreWriteFailed)
    assert sorted(t.source_id for t in _trades_for(session, user.id)) == ["1"]
    session.refresh(connection)
    assert connection.sync_status == "sync_error"
    assert as_utc(connection.last_synced_at) == now


@pytest.mark.asyncio
async def test_concurrent_syncs_for_same_user_insert_once(engine, user, connection, now):
    fills = [make_fill(i) for i in range(1, 6)]
    client = FakeFillsClient({WALLET_A: fills})

    with Session(engine) as s1, Session(engine) as s2:
        results = await asyncio.gather(
            sync_user(user.id, *_stores(s1), client, now=now),
            sync_user(user.id, *_stores(s2), client, now=now),
        )

    assert sorted(r.inserted for r in results) == [0, 5]
    assert sum(r.skipped for r in results) == 5


# ---------------------------------------------------------------------------
# 4. All-connections sync
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_one_user_failure_does_not_stop_others(engine, session, user, other_user, connection, other_connection, now):
    client = FakeFillsClient(
        {WALLET_B: [make_fill(10), make_fill(11)]},
        failing_wallets={WALLET_A},
    )

    results = await sync_all_connections(lambda: Session(engine), client, now=now)

    by_user = {r.user_id: r for r in results}
    assert by_user[user.id].error is not None
    assert by_user[user.id].inserted == 0
    assert by_user[other_user.id].error is None
    assert (by_user[other_user.id].inserted, by_user[other_user.id].skipped) == (2, 0)

    session.expire_all()
    conn_a = session.get(ExchangeConnection, connection.id)
    conn_b = session.get(ExchangeConnection, other_connection.id)
    assert conn_a.last_synced_at is None
    assert conn_a.sync_status == "sync_error"
    assert as_utc(conn_b.last_synced_at) == now
    assert conn_b.sync_status == "synced"


@pytest.mark.asyncio
async def test_all_connections_sync_is_idempotent(engine, user, other_user, connection, other_connection, now):
    client = FakeFillsClient({WALLET_A: [make_fill(1)], WALLET_B: [make_fill(1), make_fill(2)]})

    first = await sync_all_connections(lambda: Session(engine), client, now=now)
    second = await sync_all_connections(lambda: Session(engine), client, now=now)

    assert [(r.inserted, r.skipped) for r in first] == [(1, 0), (2, 0)]
    assert [(r.inserted, r.skipped) for r in second] == [(0, 1), (0, 2)]


# ---------------------------------------------------------------------------
# 5. Cancellation
# ---------------------------------------------------------------------------

class HangingFillsClient(FakeFillsClient):
    async def fetch_fills(self, wallet, start_time_ms=None):
        self.calls.append((wallet, start_time_ms))
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_cancelled_sync_marks_connection_failed(session, user, connection, now):
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(sync_user(user.id, *_stores(session), HangingFillsClient(), now=now), 0.05)

    session.refresh(connection)
    assert connection.sync_status == "sync_error"
    assert connection.last_error == "sync cancelled"
    assert connection.last_synced_at is None


@pytest.mark.asyncio
async def test_budget_cutoff_leaves_no_connection_syncing(engine, session, user, connection, now):
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(
            sync_all_connections(lambda: Session(engine), HangingFillsClient(), now=now), 0.05
        )

    session.expire_all()
    assert session.get(ExchangeConnection, connection.id).sync_status == "sync_error"


@pytest.mark.asyncio
async def test_cancelled_sync_releases_user_lock(session, user, connection, now):
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(sync_user(user.id, *_stores(session), HangingFillsClient(), now=now), 0.05)

    result = await sync_user(user.id, *_stores(session), FakeFillsClient({WALLET_A: [make_fill(1)]}), now=now)

    assert result.inserted == 1
