"""Frequency aggregation and top-N ranking over collected analysis results."""

from __future__ import annotations

from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence

from .analysis import AnalysisResult, Category
from .signals_config import DEFAULT_TOP_N, LABEL_MAX_CHARS, LABEL_TRUNCATION_MARKER

FrequencyMap = Dict[str, int]


class RankedEntry(NamedTuple):
    label: str
    count: int


def normalize_label(
    item: str,
    category: Category,
    max_chars: int = LABEL_MAX_CHARS,
    marker: str = LABEL_TRUNCATION_MARKER,
) -> str:
    """Bound heading labels to ``max_chars`` plus a marker; keywords pass through."""

    if category is Category.SECTION_HEADINGS and len(item) > max_chars:
        return item[:max_chars] + marker
    return item


def aggregate(results: Iterable[AnalysisResult], *, max_chars: int = LABEL_MAX_CHARS) -> FrequencyMap:
    """Count normalized items across ``results``.

    Single-threaded: results arrive already serialized by the dispatcher, so the
    map is never shared with producers.
    """

    frequencies: FrequencyMap = {}
    for result in results:
        for item in result.items:
            label = normalize_label(item, result.category, max_chars)
            frequencies[label] = frequencies.get(label, 0) + 1
    return frequencies


def aggregate_by_category(
    results: Sequence[AnalysisResult],
    categories: Optional[Iterable[Category]] = None,
    *,
    max_chars: int = LABEL_MAX_CHARS,
) -> Dict[Category, FrequencyMap]:
    order: List[Category] = list(categories) if categories is not None else []
    for result in results:
        if result.category not in order:
            order.append(result.category)
    return {
        category: aggregate((r for r in results if r.category is category), max_chars=max_chars)
        for category in order
    }


def top_n(frequencies: FrequencyMap, n: int = DEFAULT_TOP_N) -> List[RankedEntry]:
    """Highest counts first; ties keep first-insertion order (stable sort)."""

    if n <= 0:
        return []
    ranked = sorted(frequencies.items(), key=lambda pair: pair[1], reverse=True)
    return [RankedEntry(label, count) for label, count in ranked[:n]]


__all__ = [
    "FrequencyMap",
    "RankedEntry",
    "aggregate",
    "aggregate_by_category",
    "normalize_label",
    "top_n",
]
