"""
Account lookups used by the scan dispatchers.

- Tier prefetch: one query for every owning user in a dispatcher run
- Usage counters: atomic increment of results_count
"""

import logging
from typing import Dict, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_session, dialect_insert
from .models import User, Usage, utc_now_naive
from ..config.tiers import DEFAULT_TIER

logger = logging.getLogger(__name__)


async def prefetch_user_tiers(user_ids: Iterable[str]) -> Dict[str, str]:
    """Map user_id -> tier key for all given users in a single query.

    Users without a row or without a status get the default tier.
    """
    unique_ids = sorted(set(user_ids))
    if not unique_ids:
        return {}

    async with get_session() as session:
        result = await session.execute(
            select(User.id, User.subscription_status).where(User.id.in_(unique_ids))
        )
        rows = result.all()

    tiers = {user_id: DEFAULT_TIER for user_id in unique_ids}
    for user_id, status in rows:
        tiers[user_id] = status or DEFAULT_TIER
    return tiers


async def get_user_tier(user_id: str) -> str:
    """Tier for a single user."""
    tiers = await prefetch_user_tiers([user_id])
    return tiers.get(user_id, DEFAULT_TIER)


async def increment_results_count(session: AsyncSession, user_id: str, count: int) -> None:
    """Add count to the user's results counter (creates the row on first use).

    Runs inside the caller's session so it commits together with the inserts.
    """
    if count <= 0:
        return

    table = Usage.__table__
    stmt = dialect_insert(session, table).values(
        user_id=user_id,
        results_count=count,
        period_start=utc_now_naive(),
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={"results_count": table.c.results_count + count},
    )
    await session.execute(stmt)
