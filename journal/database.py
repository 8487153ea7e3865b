"""SQLModel database engine and session management."""

import logging

from sqlalchemy import inspect
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from journal.config import settings

logger = logging.getLogger(__name__)

# SQLite needs check_same_thread=False; PostgreSQL does not
connect_args = {}
engine_kwargs = {}
if settings.database_url.startswith("sqlite"):
    connect_args["check_same_thread"] = False
    if settings.database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        engine_kwargs["poolclass"] = StaticPool

engine = create_engine(
    settings.database_url,
    echo=False,
    connect_args=connect_args,
    **engine_kwargs,
)


def _run_migrations(bind=None):
    """Run lightweight schema migrations for tables created before constraints existed."""
    from sqlalchemy import text

    bind = bind or engine
    inspector = inspect(bind)

    if "trade" not in inspector.get_table_names():
        return

    # Sync dedup depends on this index under concurrent writers
    existing_indexes = inspector.get_indexes("trade")
    existing_uniques = inspector.get_unique_constraints("trade")
    has_unique = any(
        idx["name"] == "ix_trade_user_source_source_id_unique" for idx in existing_indexes
    ) or any(
        set(uc["column_names"]) == {"user_id", "source", "source_id"} for uc in existing_uniques
    )
    if not has_unique:
        logger.info("Migrating: adding unique index on trade(user_id, source, source_id)")
        with bind.connect() as conn:
            conn.execute(text(
                "CREATE UNIQUE INDEX ix_trade_user_source_source_id_unique "
                "ON trade (user_id, source, source_id)"
            ))
            conn.commit()


def create_db_and_tables(bind=None):
    """Create all tables. Called on startup."""
    import journal.models  # noqa: F401  (registers tables on the metadata)

    SQLModel.metadata.create_all(bind or engine)
    _run_migrations(bind)


def get_session() -> Session:
    """Dependency that yields a database session."""
    with Session(engine) as session:
        yield session
