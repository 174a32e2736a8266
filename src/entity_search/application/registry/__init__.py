"""
Type registry construction.

``build_registry`` is a pure pass from raw configuration (usually YAML) to
an immutable ``SearchRegistry``. Embedded behaviour is referenced by name
and resolved through the strategy tables in ``strategies``.
"""

from .builder import build_registry, load_registry, merge_defaults
from .strategies import (
    get_post_filter,
    get_sort_strategy,
    get_transform,
    register_post_filter,
    register_sort_strategy,
    register_transform,
)

__all__ = [
    "build_registry",
    "load_registry",
    "merge_defaults",
    "get_transform",
    "get_sort_strategy",
    "get_post_filter",
    "register_transform",
    "register_sort_strategy",
    "register_post_filter",
]
