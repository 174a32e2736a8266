"""
Application Layer - Registry building and search orchestration

Contains:
- registry: Raw configuration → immutable SearchRegistry, named strategy tables
- search: Query compilation, orchestration, ranking and the Searcher facade
- events: Operation events and sinks
"""

from .events import EventName, EventSink, LoggingEventSink, SearchEvent, dispatch
from .registry import build_registry, load_registry
from .search import Searcher

__all__ = [
    # Registry
    "build_registry",
    "load_registry",
    # Search
    "Searcher",
    # Events
    "EventName",
    "EventSink",
    "SearchEvent",
    "LoggingEventSink",
    "dispatch",
]
