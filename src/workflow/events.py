"""
Event bus for announcements and event-triggered runs.

Events named after a subscribed workflow function (e.g. "monitor/scan-now")
start a run locally. Everything else (content/analyze, content/analyze-batch)
goes to the configured sink for the external analysis consumer.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, Field

from .executor import StepExecutor, WorkflowFunction
from ..archivist.models import new_id
from ..config.settings import settings

logger = logging.getLogger(__name__)


# Event names
ANALYZE_ONE = "content/analyze"
ANALYZE_BATCH = "content/analyze-batch"
SCAN_NOW = "monitor/scan-now"


class Event(BaseModel):
    """A named announcement with a JSON payload."""
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)
    id: str = Field(default_factory=new_id)


class EventSink(ABC):
    """Destination for events nobody in-process subscribes to."""

    @abstractmethod
    async def publish(self, events: List[Event]) -> None:
        """Deliver events. Raise on failure so the calling step is retried."""


class LoggingEventSink(EventSink):
    """Sink used when no external endpoint is configured."""

    async def publish(self, events: List[Event]) -> None:
        for event in events:
            logger.info(f"EVENT {event.name} id={event.id} (no sink configured)")


class HttpEventSink(EventSink):
    """POST events as a JSON array to an HTTP endpoint."""

    def __init__(self, url: str, timeout: Optional[float] = None):
        self.url = url
        self.timeout = timeout or settings.event_sink_timeout

    async def publish(self, events: List[Event]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.url,
                json=[event.model_dump(mode="json") for event in events],
            )
            response.raise_for_status()
        logger.debug(f"Published {len(events)} events to {self.url}")


def create_event_sink() -> EventSink:
    """Sink from settings: HTTP when EVENT_SINK_URL is set, logging otherwise."""
    if settings.event_sink_url:
        return HttpEventSink(settings.event_sink_url)
    return LoggingEventSink()


class EventBus:
    """Routes events to subscribed functions or to the external sink."""

    def __init__(self, sink: EventSink, executor: Optional[StepExecutor] = None):
        self.sink = sink
        self.executor = executor
        self._subscribers: Dict[str, List[WorkflowFunction]] = {}

    def subscribe(self, function: WorkflowFunction) -> None:
        """Start a run of `function` for every event named function.event."""
        if not function.event:
            raise ValueError(f"Function {function.id} has no event trigger")
        self._subscribers.setdefault(function.event, []).append(function)

    async def send(self, events: Union[Event, List[Event]]) -> List[str]:
        """Send one or more events. Returns their ids."""
        if isinstance(events, Event):
            events = [events]
        if not events:
            return []

        external: List[Event] = []
        for event in events:
            functions = self._subscribers.get(event.name)
            if not functions:
                external.append(event)
                continue
            if self.executor is None:
                raise RuntimeError(f"No executor to run subscribers of {event.name}")
            for function in functions:
                # Event id in the run id: a re-sent event resumes the same run
                self.executor.start(function, f"{function.id}:{event.id}", event.data)

        if external:
            await self.sink.publish(external)

        return [event.id for event in events]
