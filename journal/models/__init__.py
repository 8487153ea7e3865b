"""Database models."""

from journal.models.user import User
from journal.models.trade import Trade
from journal.models.connection import ExchangeConnection

__all__ = [
    "User",
    "Trade",
    "ExchangeConnection",
]
