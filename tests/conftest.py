"""Shared fixtures: in-memory database, users, connections and a scripted fills source."""

import os

# Must be set before journal.config is imported anywhere
os.environ.setdefault("TJ_DATABASE_URL", "sqlite://")
os.environ.setdefault("TJ_SCHEDULER_ENABLED", "false")
os.environ.setdefault("TJ_CRON_SECRET", "test-cron-secret")
os.environ.setdefault("TJ_CALENDAR_TIMEZONE", "UTC")

from datetime import datetime, timezone

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from journal.database import create_db_and_tables
from journal.errors import RemoteUnavailable
from journal.models.connection import ExchangeConnection
from journal.models.user import User

WALLET_A = "0x" + "a" * 40
WALLET_B = "0x" + "b" * 40
T0 = 1_718_000_000_000  # 2024-06-10T06:13:20Z in ms


def make_fill(tid, coin="BTC", px="50000", sz="1", closed_pnl="500", dir="Close Long", time=T0, fee="1.5"):
    """A fill dict shaped like the Hyperliquid userFills response."""
    return {
        "coin": coin,
        "px": px,
        "sz": sz,
        "side": "A" if "Long" in dir else "B",
        "time": time,
        "startPosition": "1.0",
        "dir": dir,
        "closedPnl": closed_pnl,
        "hash": f"0x{tid:064x}" if isinstance(tid, int) else "0x0",
        "oid": 1000 + (tid if isinstance(tid, int) else 0),
        "crossed": True,
        "fee": fee,
        "tid": tid,
        "feeToken": "USDC",
    }


class FakeFillsClient:
    """Stands in for HyperliquidClient: serves fills per wallet, or raises."""

    def __init__(self, fills_by_wallet=None, failing_wallets=()):
        self.fills_by_wallet = fills_by_wallet or {}
        self.failing_wallets = set(failing_wallets)
        self.calls = []

    async def fetch_fills(self, wallet, start_time_ms=None):
        self.calls.append((wallet, start_time_ms))
        if wallet in self.failing_wallets:
            raise RemoteUnavailable("Hyperliquid API error: 500 on userFillsByTime")
        return list(self.fills_by_wallet.get(wallet, []))

    async def close(self):
        pass


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


def _add_user(session, username):
    user = User(username=username, hashed_password="not-a-real-hash")
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def _add_connection(session, user, wallet, sync_period="30d"):
    conn = ExchangeConnection(user_id=user.id, wallet_address=wallet, sync_period=sync_period)
    session.add(conn)
    session.commit()
    session.refresh(conn)
    return conn


@pytest.fixture
def user(session):
    return _add_user(session, "alice")


@pytest.fixture
def other_user(session):
    return _add_user(session, "bob")


@pytest.fixture
def connection(session, user):
    return _add_connection(session, user, WALLET_A)


@pytest.fixture
def other_connection(session, other_user):
    return _add_connection(session, other_user, WALLET_B)


@pytest.fixture
def now():
    return datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
