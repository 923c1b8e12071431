"""
Result persistence - batched, deduplicating inserts.

save_new() is the only writer of the results table:
1. Collect source URLs for all candidates (first occurrence wins within a batch)
2. One existence check for exactly those URLs
3. Drop candidates that already exist
4. One batched insert of the remainder
5. Increment the user's usage counter by the inserted count

Steps 2-4 are not atomic against a second run touching the same monitor.
The unique index on source_url is the backstop: ON CONFLICT DO NOTHING makes
the loser of that race a no-op instead of an error.
"""

import logging
from datetime import timezone
from typing import Any, Callable, Dict, List, Sequence, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import select

from .accounts import increment_results_count
from .database import get_session, dialect_insert
from .models import Result, new_id, utc_now_naive

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SavedResults(BaseModel):
    """Outcome of one save_new() call."""
    count: int = 0
    ids: List[str] = Field(default_factory=list)


def _prepare_row(values: Dict[str, Any], monitor_id: str, source_url: str) -> Dict[str, Any]:
    """Fill the columns Python-side defaults would normally provide."""
    row = dict(values)
    row["source_url"] = source_url
    row.setdefault("monitor_id", monitor_id)
    row.setdefault("id", new_id())
    row.setdefault("created_at", utc_now_naive())
    posted_at = row.get("posted_at")
    if posted_at is not None and posted_at.tzinfo is not None:
        row["posted_at"] = posted_at.astimezone(timezone.utc).replace(tzinfo=None)
    return row


async def save_new(
    items: Sequence[T],
    monitor_id: str,
    user_id: str,
    get_source_url: Callable[[T], str],
    map_to_result: Callable[[T], Dict[str, Any]],
) -> SavedResults:
    """Persist items whose source URL has never been stored.

    Args:
        items: Candidate items from a source fetcher
        monitor_id: Owning monitor
        user_id: Owner for usage accounting
        get_source_url: Extract the dedup key from an item
        map_to_result: Map an item to Result column values

    Returns:
        SavedResults with the number and ids of rows actually inserted
    """
    if not items:
        return SavedResults()

    candidates: Dict[str, T] = {}
    for item in items:
        url = get_source_url(item)
        if url and url not in candidates:
            candidates[url] = item

    if not candidates:
        return SavedResults()

    table = Result.__table__

    async with get_session() as session:
        existing = await session.execute(
            select(Result.source_url).where(Result.source_url.in_(list(candidates)))
        )
        existing_urls = set(existing.scalars().all())

        new_urls = [url for url in candidates if url not in existing_urls]
        if not new_urls:
            logger.debug(f"Monitor {monitor_id}: all {len(candidates)} results already stored")
            return SavedResults()

        rows = [_prepare_row(map_to_result(candidates[url]), monitor_id, url) for url in new_urls]

        stmt = (
            dialect_insert(session, table)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["source_url"])
            .returning(table.c.id)
        )
        inserted = await session.execute(stmt)
        ids = [row[0] for row in inserted.fetchall()]

        if len(ids) < len(rows):
            # Another run inserted some of these between our check and insert
            logger.info(
                f"RESULT_INSERT_RACE: monitor={monitor_id} skipped "
                f"{len(rows) - len(ids)} rows already inserted concurrently"
            )

        await increment_results_count(session, user_id, len(ids))

    logger.debug(f"Monitor {monitor_id}: saved {len(ids)} new results ({len(existing_urls)} existing)")
    return SavedResults(count=len(ids), ids=ids)
