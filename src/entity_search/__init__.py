"""
Entity Search - Configuration-driven search over typed entity collections

Compiles caller requests against a registry of entity types into backend
queries, fans multi-type searches out in one batched round trip, and shapes
the responses (relevancy cliff, facets, summaries, pagination, sections).

Usage:
    from entity_search import ApplicationContainer

    container = ApplicationContainer()
    container.config.from_dict({"config_path": "search.yaml", "es_url": "http://localhost:9200"})

    searcher = container.searcher()
    result = await searcher.search({}, {"text": "swift dzire", "type": "*"})

Features:
    - Single-type, multi-type and flat (cross-type) search
    - Facets with post-filter selections, summaries, pagination links
    - Autocomplete and deflection-ranked suggested queries
    - Intent cascade (brand → model → variant) section composition
    - Explain, term vectors, get-by-id and scroll-based views
"""

from .application import Searcher, build_registry, load_registry
from .container import ApplicationContainer
from .shared.exceptions import (
    ConfigurationError,
    EntitySearchError,
    InternalServiceError,
    ValidationError,
)

__version__ = "1.0.0"

__all__ = [
    "__version__",
    # High-level API
    "ApplicationContainer",
    "Searcher",
    "build_registry",
    "load_registry",
    # Errors
    "EntitySearchError",
    "ConfigurationError",
    "ValidationError",
    "InternalServiceError",
]
