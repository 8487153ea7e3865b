"""Shared constants and defaults."""

from datetime import timedelta

SOURCE_MANUAL = "manual"
SOURCE_HYPERLIQUID = "hyperliquid"
EXCHANGE_HYPERLIQUID = "Hyperliquid"  # display name stored on synced trades

# Look-back windows a connection can be configured with
SYNC_PERIODS: dict[str, timedelta] = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "180d": timedelta(days=180),
}
DEFAULT_SYNC_PERIOD = "30d"

# Connection sync states
SYNC_UNSYNCED = "unsynced"
SYNC_RUNNING = "syncing"
SYNC_OK = "synced"
SYNC_ERROR = "sync_error"

UNTAGGED_STRATEGY = "Untagged"

# Calendar heat scale: opacity = HEAT_MIN + ratio * HEAT_SPAN
HEAT_MIN = 0.05
HEAT_SPAN = 0.2
