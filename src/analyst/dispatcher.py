"""
Analysis fan-out for newly saved results.

Per-item analysis costs materially more than sampled batch analysis, so a
scan that produced more than the batch threshold announces one batch;
otherwise every result is announced on its own. Never a mixed split.
"""

import logging
from typing import List, Optional, Sequence

from ..config.settings import settings
from ..workflow.events import Event, EventBus, ANALYZE_ONE, ANALYZE_BATCH

logger = logging.getLogger(__name__)


def build_analysis_events(
    result_ids: Sequence[str],
    monitor_id: str,
    user_id: str,
    source: str,
    batch_threshold: Optional[int] = None,
) -> List[Event]:
    """Announcements for one scan's new results (empty when nothing is new)."""
    if not result_ids:
        return []

    threshold = settings.analysis_batch_threshold if batch_threshold is None else batch_threshold

    if len(result_ids) > threshold:
        return [
            Event(
                name=ANALYZE_BATCH,
                data={
                    "monitorId": monitor_id,
                    "userId": user_id,
                    "source": source,
                    "resultIds": list(result_ids),
                    "totalCount": len(result_ids),
                },
            )
        ]

    return [
        Event(name=ANALYZE_ONE, data={"resultId": result_id, "userId": user_id})
        for result_id in result_ids
    ]


async def dispatch_analysis(
    events: EventBus,
    result_ids: Sequence[str],
    monitor_id: str,
    user_id: str,
    source: str,
    batch_threshold: Optional[int] = None,
) -> int:
    """Announce new results to the analysis consumer.

    Returns the number of events sent.
    """
    announcements = build_analysis_events(result_ids, monitor_id, user_id, source, batch_threshold)
    if not announcements:
        return 0

    await events.send(announcements)

    mode = "batch" if announcements[0].name == ANALYZE_BATCH else "individual"
    logger.info(
        f"Monitor {monitor_id}: queued {mode} analysis for {len(result_ids)} {source} results"
    )
    return len(announcements)
