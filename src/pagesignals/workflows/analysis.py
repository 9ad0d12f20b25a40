"""Per-page analysis: fetch one URL and extract category-specific signals."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .page_fetch import FetchError, FetchFunc, PageContent
from .signals_config import DEFAULT_TIMEOUT, FEATURE_VOCABULARY, MIN_HEADING_CHARS

logger = logging.getLogger(__name__)

ERROR_UNEXPECTED = "unexpected"


class Category(Enum):
    """Selects which extraction rule applies to a page."""

    FEATURE_KEYWORDS = "feature_keywords"
    SECTION_HEADINGS = "section_headings"

    @classmethod
    def parse(cls, value: "Category | str") -> "Category":
        if isinstance(value, cls):
            return value
        token = str(value or "").strip()
        for member in cls:
            if token == member.value or token.upper() == member.name:
                return member
        legacy = _LEGACY_TAGS.get(token.upper())
        if legacy is not None:
            return legacy
        raise ValueError(f"Unknown category: {value!r}")


_LEGACY_TAGS: Dict[str, Category] = {
    "CRIME": Category.FEATURE_KEYWORDS,
    "DEEP_LEARNING": Category.SECTION_HEADINGS,
}


@dataclass(frozen=True)
class AnalysisTask:
    url: str
    category: Category


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of one task. Empty ``items`` is a valid result, not an error."""

    url: str
    category: Category
    items: Tuple[str, ...] = ()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, task: AnalysisTask, error: str) -> "AnalysisResult":
        return cls(url=task.url, category=task.category, items=(), error=error)


def extract_feature_keywords(text: str, vocabulary: Iterable[str] = FEATURE_VOCABULARY) -> List[str]:
    """Return vocabulary keywords present in ``text``, in vocabulary order."""

    lowered = (text or "").lower()
    return [keyword for keyword in vocabulary if keyword in lowered]


def extract_section_headings(headings: Iterable[str], min_chars: int = MIN_HEADING_CHARS) -> List[str]:
    """Keep trimmed headings longer than ``min_chars``; duplicates are kept."""

    items: List[str] = []
    for heading in headings:
        text = (heading or "").strip()
        if len(text) > min_chars:
            items.append(text)
    return items


def _keywords_from_page(page: PageContent, vocabulary: Sequence[str], min_heading_chars: int) -> List[str]:
    return extract_feature_keywords(page.body_text(), vocabulary)


def _headings_from_page(page: PageContent, vocabulary: Sequence[str], min_heading_chars: int) -> List[str]:
    return extract_section_headings(page.headings(), min_heading_chars)


Extractor = Callable[[PageContent, Sequence[str], int], List[str]]

EXTRACTORS: Dict[Category, Extractor] = {
    Category.FEATURE_KEYWORDS: _keywords_from_page,
    Category.SECTION_HEADINGS: _headings_from_page,
}


def analyze(
    task: AnalysisTask,
    *,
    fetch: FetchFunc,
    timeout: float = DEFAULT_TIMEOUT,
    vocabulary: Sequence[str] = FEATURE_VOCABULARY,
    min_heading_chars: int = MIN_HEADING_CHARS,
) -> AnalysisResult:
    """Fetch ``task.url`` and extract its signals. Never raises.

    Any failure (fetch, parse or extraction) is logged and collapsed into an
    empty-items result that keeps the URL and carries the error kind.
    """

    logger.info("%s fetching: %s", threading.current_thread().name, task.url)
    try:
        page = fetch(task.url, timeout)
        items = EXTRACTORS[task.category](page, vocabulary, min_heading_chars)
    except FetchError as exc:
        logger.warning("Error processing %s: %s", task.url, exc)
        return AnalysisResult.failed(task, exc.kind)
    except Exception as exc:
        logger.warning("Error processing %s: %s: %s", task.url, exc.__class__.__name__, exc)
        return AnalysisResult.failed(task, ERROR_UNEXPECTED)
    logger.debug("%s yielded %d item(s)", task.url, len(items))
    return AnalysisResult(url=task.url, category=task.category, items=tuple(items))


__all__ = [
    "AnalysisResult",
    "AnalysisTask",
    "Category",
    "ERROR_UNEXPECTED",
    "EXTRACTORS",
    "analyze",
    "extract_feature_keywords",
    "extract_section_headings",
]
