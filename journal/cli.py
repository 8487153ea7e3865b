"""CLI tool for admin operations.

Usage:
    python -m journal.cli create-user
    python -m journal.cli sync [username]
"""

import asyncio
import getpass
import sys

from sqlmodel import Session, select

from journal.database import engine, create_db_and_tables
from journal.models.user import User
from journal.services.auth import hash_password
from journal.utils.logging import setup_logging


def create_user():
    """Create a journal user."""
    create_db_and_tables()

    username = input("Username: ").strip()
    if not username:
        print("Username cannot be empty.")
        sys.exit(1)

    with Session(engine) as session:
        existing = session.exec(select(User).where(User.username == username)).first()
        if existing:
            print(f"User '{username}' already exists.")
            sys.exit(1)

    password = getpass.getpass("Password: ")
    password_confirm = getpass.getpass("Confirm password: ")
    if password != password_confirm:
        print("Passwords do not match.")
        sys.exit(1)

    with Session(engine) as session:
        session.add(User(username=username, hashed_password=hash_password(password)))
        session.commit()

    print(f"\nUser '{username}' created successfully.")


def run_sync(username: str | None = None):
    """Sync one user's exchange fills, or every connection when no user is given."""
    from journal.engine.trade_sync import sync_all_connections, sync_user
    from journal.errors import JournalError
    from journal.services.connection_registry import ConnectionRegistry
    from journal.services.hyperliquid_client import HyperliquidClient
    from journal.services.trade_store import TradeStore

    create_db_and_tables()

    async def _run():
        client = HyperliquidClient()
        try:
            if username is None:
                results = await sync_all_connections(lambda: Session(engine), client)
                for r in results:
                    status = f"error: {r.error}" if r.error else (
                        f"inserted={r.inserted} skipped={r.skipped} rejected={r.rejected}"
                    )
                    print(f"user {r.user_id}: {status}")
                return 1 if any(r.error for r in results) else 0

            with Session(engine) as session:
                user = session.exec(select(User).where(User.username == username)).first()
                if user is None:
                    print(f"User '{username}' not found.")
                    return 1
                try:
                    result = await sync_user(user.id, TradeStore(session), ConnectionRegistry(session), client)
                except JournalError as e:
                    print(f"Sync failed: {e.message}")
                    return 1
                print(f"inserted={result.inserted} skipped={result.skipped} rejected={result.rejected}")
                return 0
        finally:
            await client.close()

    sys.exit(asyncio.run(_run()))


def main():
    if len(sys.argv) < 2:
        print("Usage: python -m journal.cli <command>")
        print("Commands: create-user, sync [username]")
        sys.exit(1)

    setup_logging()
    command = sys.argv[1]
    if command == "create-user":
        create_user()
    elif command == "sync":
        run_sync(sys.argv[2] if len(sys.argv) > 2 else None)
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)


if __name__ == "__main__":
    main()
