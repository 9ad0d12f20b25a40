"""Batch entrypoint: load tasks, run the pool, aggregate and rank per category."""

from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from dotenv import load_dotenv

from ..core.keys import K_CATEGORY, K_URL
from .aggregate import FrequencyMap, RankedEntry, aggregate_by_category, top_n
from .analysis import AnalysisResult, AnalysisTask, Category, analyze
from .dispatcher import ERROR_DEADLINE, ProgressHook, default_worker_count, dispatch
from .page_fetch import FetchConfig, FetchFunc, PageFetcher
from .signals_config import (
    DEFAULT_BATCH,
    DEFAULT_TIMEOUT,
    DEFAULT_TOP_N,
    FEATURE_VOCABULARY,
    LABEL_MAX_CHARS,
    MIN_HEADING_CHARS,
    USER_AGENT,
)

load_dotenv(override=False)


def _env_int(name: str, default: int = 0) -> int:
    try:
        raw = os.getenv(name, "")
        return int(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


def _env_float(name: str, default: Optional[float] = None) -> Optional[float]:
    try:
        raw = os.getenv(name, "")
        return float(raw) if raw.strip() else default
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True, slots=True)
class SignalsPolicy:
    workers: int
    timeout: float = DEFAULT_TIMEOUT
    top_n: int = DEFAULT_TOP_N
    # Seconds for the whole collection phase; None blocks until every task returns.
    deadline: Optional[float] = None
    vocabulary: Tuple[str, ...] = FEATURE_VOCABULARY
    min_heading_chars: int = MIN_HEADING_CHARS
    label_max_chars: int = LABEL_MAX_CHARS
    user_agent: str = USER_AGENT


def _policy_from_env() -> SignalsPolicy:
    timeout = _env_float("PAGESIGNALS_TIMEOUT", DEFAULT_TIMEOUT)
    deadline = _env_float("PAGESIGNALS_DEADLINE", None)
    return SignalsPolicy(
        workers=max(1, _env_int("PAGESIGNALS_WORKERS", default_worker_count())),
        timeout=timeout if timeout and timeout > 0 else DEFAULT_TIMEOUT,
        top_n=_env_int("PAGESIGNALS_TOP_N", DEFAULT_TOP_N),
        deadline=deadline if deadline is not None and deadline > 0 else None,
        user_agent=os.getenv("PAGESIGNALS_USER_AGENT", "").strip() or USER_AGENT,
    )


DEFAULT_POLICY = _policy_from_env()


@dataclass
class CategoryReport:
    category: Category
    frequencies: FrequencyMap
    ranked: List[RankedEntry]
    total: int = 0
    failed: int = 0


@dataclass
class BatchReport:
    results: List[AnalysisResult]
    categories: List[CategoryReport]
    audit: Dict[str, Any] = field(default_factory=dict)

    def category(self, category: Union[Category, str]) -> Optional[CategoryReport]:
        wanted = Category.parse(category)
        for report in self.categories:
            if report.category is wanted:
                return report
        return None


EntryLike = Union[Tuple[str, Union[Category, str]], Dict[str, Any], AnalysisTask]


def load_inventory_entries(path: Path) -> List[Dict[str, Any]]:
    """Read a JSONL inventory of ``{"url": ..., "category": ...}`` objects."""

    entries: List[Dict[str, Any]] = []
    with path.open("r", encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                raise ValueError(f"Invalid JSON line in {path}: {line[:80]}") from None
            if not isinstance(entry, dict):
                raise ValueError(f"Inventory line is not an object in {path}: {line[:80]}")
            for key in (K_URL, K_CATEGORY):
                if not entry.get(key):
                    raise ValueError(f"Inventory entry missing '{key}': {entry}")
            Category.parse(entry[K_CATEGORY])
            entries.append(entry)
    return entries


def build_tasks(entries: Iterable[EntryLike]) -> List[AnalysisTask]:
    tasks: List[AnalysisTask] = []
    for entry in entries:
        if isinstance(entry, AnalysisTask):
            tasks.append(entry)
            continue
        if isinstance(entry, dict):
            url, category = entry.get(K_URL), entry.get(K_CATEGORY)
        else:
            url, category = entry
        url = (url or "").strip()
        if not url:
            raise ValueError(f"Entry has no url: {entry!r}")
        tasks.append(AnalysisTask(url=url, category=Category.parse(category)))
    return tasks


def default_tasks() -> List[AnalysisTask]:
    return build_tasks(DEFAULT_BATCH)


def run_pipeline(
    entries: Iterable[EntryLike],
    *,
    policy: Optional[SignalsPolicy] = None,
    fetch: Optional[FetchFunc] = None,
    progress_hook: Optional[ProgressHook] = None,
) -> BatchReport:
    """Fetch, analyze, aggregate and rank one batch."""

    policy = policy or DEFAULT_POLICY
    tasks = build_tasks(entries)
    owned: Optional[PageFetcher] = None
    if fetch is None:
        owned = PageFetcher(FetchConfig(timeout=policy.timeout, user_agent=policy.user_agent))
        fetch = owned
    run_task = partial(
        analyze,
        fetch=fetch,
        timeout=policy.timeout,
        vocabulary=policy.vocabulary,
        min_heading_chars=policy.min_heading_chars,
    )

    start_time = time.perf_counter()
    try:
        results = dispatch(
            tasks,
            run_task=run_task,
            workers=policy.workers,
            deadline=policy.deadline,
            progress_hook=progress_hook,
        )
    finally:
        if owned is not None:
            owned.close()
    duration_ms = int((time.perf_counter() - start_time) * 1000)

    order: List[Category] = []
    for task in tasks:
        if task.category not in order:
            order.append(task.category)
    maps = aggregate_by_category(results, order, max_chars=policy.label_max_chars)

    reports: List[CategoryReport] = []
    for category, frequencies in maps.items():
        members = [r for r in results if r.category is category]
        reports.append(
            CategoryReport(
                category=category,
                frequencies=frequencies,
                ranked=top_n(frequencies, policy.top_n),
                total=len(members),
                failed=sum(1 for r in members if not r.ok),
            )
        )

    audit = {
        "total": len(results),
        "success": sum(1 for r in results if r.ok),
        "failed": sum(1 for r in results if not r.ok),
        "deadline_exceeded": sum(1 for r in results if r.error == ERROR_DEADLINE),
        "workers": policy.workers,
        "duration_ms": duration_ms,
    }
    return BatchReport(results=results, categories=reports, audit=audit)


__all__ = [
    "BatchReport",
    "CategoryReport",
    "DEFAULT_POLICY",
    "SignalsPolicy",
    "build_tasks",
    "default_tasks",
    "load_inventory_entries",
    "run_pipeline",
]
