"""Sync dedup: which fetched fills are not in the journal yet."""

from collections.abc import Iterable

from journal.services.trade_store import TradeStore


def find_new_source_ids(
    store: TradeStore,
    user_id: int,
    source: str,
    candidate_ids: Iterable[str],
) -> set[str]:
    """Return the candidate source_ids with no trade row for (user, source).

    Rows that were soft-deleted still count as recorded, so a re-sync never
    brings a deleted fill back. The unique index on (user_id, source,
    source_id) remains the guarantee under concurrent writers; this check only
    keeps known duplicates out of the insert batch.
    """
    candidates = set(candidate_ids)
    existing = store.existing_source_ids(user_id, source, candidates)
    return candidates - existing
