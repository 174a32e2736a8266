"""
Score-shape truncation for result lists.

Two natural-cutoff algorithms replace a fixed top-K:

1. **Relevancy cliff filter** - walks an ordered hit list and drops a hit
   whose score is at most ``ratio`` times the last *kept* hit's score. The
   reference only moves on keep, so ``[100, 90, 30, 28]`` keeps
   ``[100, 90]``: 28 is compared with 90, never with the dropped 30.

2. **Relevancy-deflection ranker** - used by suggested queries over merged
   groups. Each hit's relevancy is its score divided by its importance weight;
   the first relevancy (in descending order) that falls to at most ``ratio``
   times its predecessor marks the deflection point, and the predecessor
   becomes the threshold. Hits at or above the threshold survive, re-sorted
   by raw score.

Architecture:
    Stateless functions over plain hit dicts (``_score``, ``_weight``).
    Ratios come from ``RelevancySettings`` rather than literals.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from numbers import Real
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CLIFF_RATIO = 0.40
DEFAULT_DEFLECTION_RATIO = 0.50

SCORE_KEY = "_score"
WEIGHT_KEY = "_weight"


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


# =============================================================================
# Relevancy cliff filter
# =============================================================================


def relevancy_cliff_filter(
    hits: list[dict[str, Any]],
    ratio: float | None = DEFAULT_CLIFF_RATIO,
    score_key: str = SCORE_KEY,
) -> list[dict[str, Any]]:
    """
    Drop hits past a relative score cliff.

    Args:
        hits: Hits in backend order (descending score)
        ratio: Keep a hit only while score / last kept score > ratio;
            ``None`` disables the filter
        score_key: Key holding the score

    Returns:
        The kept hits, order preserved. Unchanged when any score is not
        numeric (e.g. sorted queries without scores).
    """
    if ratio is None or len(hits) < 2:
        return hits
    if not all(_is_number(hit.get(score_key)) for hit in hits):
        return hits

    kept = [hits[0]]
    reference = hits[0][score_key]
    for hit in hits[1:]:
        score = hit[score_key]
        if reference > 0 and score / reference <= ratio:
            continue
        kept.append(hit)
        reference = score

    if len(kept) < len(hits):
        logger.debug(f"Relevancy cliff dropped {len(hits) - len(kept)} of {len(hits)} hits")
    return kept


# =============================================================================
# Relevancy-deflection ranker
# =============================================================================


def relevancy_score(hit: Mapping[str, Any], weight_key: str = WEIGHT_KEY) -> float:
    """Score with the importance weight divided out."""
    score = hit.get(SCORE_KEY)
    score = float(score) if _is_number(score) else 0.0
    weight = hit.get(weight_key)
    if not _is_number(weight) or not weight:
        weight = 1.0
    return score / weight


def find_deflection_threshold(scores: Iterable[float], ratio: float = DEFAULT_DEFLECTION_RATIO) -> float | None:
    """
    First sharp drop in a descending walk over ``scores``.

    Returns:
        The score just before the drop, or ``None`` when there is none.

    Example:
        >>> find_deflection_threshold([10, 4, 3])
        10
        >>> find_deflection_threshold([10, 9, 4.6]) is None
        True
    """
    previous: float | None = None
    for score in sorted(scores, reverse=True):
        if previous and score <= ratio * previous:
            return previous
        previous = score
    return None


def deflection_rank(
    groups: Iterable[Iterable[dict[str, Any]]],
    ratio: float = DEFAULT_DEFLECTION_RATIO,
    weight_key: str = WEIGHT_KEY,
) -> list[dict[str, Any]]:
    """
    Flatten result groups and truncate at the deflection point.

    Args:
        groups: Hit lists, one per type
        ratio: Relative drop that marks the deflection point
        weight_key: Key holding the importance weight

    Returns:
        Surviving hits ordered by raw score, highest first.
    """
    scored = [(relevancy_score(hit, weight_key), hit) for group in groups for hit in group]
    threshold = find_deflection_threshold((relevancy for relevancy, _ in scored), ratio)

    if threshold is None:
        kept = [hit for _, hit in scored]
    else:
        kept = [hit for relevancy, hit in scored if relevancy >= threshold]

    kept.sort(key=lambda hit: hit.get(SCORE_KEY) if _is_number(hit.get(SCORE_KEY)) else 0.0, reverse=True)
    logger.debug(f"Deflection threshold {threshold}: kept {len(kept)} of {len(scored)} hits")
    return kept
