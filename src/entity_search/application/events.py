"""
Operation events.

After each completed search-like operation the service hands a
``SearchEvent`` to the injected sink. Dispatch is fire-and-forget: async
sinks are scheduled on the running loop, never awaited by the request, and
sink failures are logged rather than propagated.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EventName(Enum):
    SEARCH = "search"
    AUTOCOMPLETE = "autocomplete"
    SUGGESTED_QUERIES = "suggested_queries"
    FORM_SEARCH = "form_search"
    BROWSE_ALL = "browse_all"


@dataclass(frozen=True)
class SearchEvent:
    name: EventName
    headers: Mapping[str, Any] = field(default_factory=dict)
    query_data: Mapping[str, Any] = field(default_factory=dict)
    query_languages: tuple[str, ...] = ()
    query_result: Any = None

    def to_dict(self) -> dict[str, Any]:
        result = self.query_result.to_dict() if hasattr(self.query_result, "to_dict") else self.query_result
        return {
            "event": self.name.value,
            "headers": dict(self.headers),
            "query_data": dict(self.query_data),
            "query_languages": list(self.query_languages),
            "query_result": result,
        }


class EventSink(Protocol):
    def __call__(self, event: SearchEvent) -> Any: ...


class LoggingEventSink:
    """Default sink: one INFO line per completed operation."""

    def __call__(self, event: SearchEvent) -> None:
        total = getattr(event.query_result, "total_results", None)
        logger.info(f"[{event.name.value}] text={event.query_data.get('text')!r} total={total}")


_pending: set[asyncio.Task[Any]] = set()


def _log_task_failure(task: asyncio.Task[Any]) -> None:
    _pending.discard(task)
    if not task.cancelled() and task.exception() is not None:
        logger.error(f"Event sink failed: {task.exception()}")


def dispatch(sink: EventSink | None, event: SearchEvent) -> None:
    """Hand ``event`` to ``sink`` without blocking or failing the caller."""
    if sink is None:
        return
    try:
        outcome = sink(event)
    except Exception:
        logger.exception(f"Event sink failed for '{event.name.value}'")
        return

    if inspect.isawaitable(outcome):
        task = asyncio.ensure_future(outcome)
        _pending.add(task)
        task.add_done_callback(_log_task_failure)
