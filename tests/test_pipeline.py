import json
from pathlib import Path

import pytest

from pagesignals.workflows import pipeline
from pagesignals.workflows.analysis import AnalysisTask, Category
from pagesignals.workflows.page_fetch import FetchError, PageContent
from pagesignals.workflows.pipeline import (
    SignalsPolicy,
    build_tasks,
    default_tasks,
    load_inventory_entries,
    run_pipeline,
)

PAGES = {
    "https://example.com/crime/1": "<body><p>The police made an arrest at the location.</p></body>",
    "https://example.com/crime/2": "<body><p>A witness told police about the weapon.</p></body>",
    "https://example.com/dl/1": (
        "<body><h2>Introduction to Attention Mechanisms</h2><h2>Menu</h2><h3>Training</h3></body>"
    ),
    "https://example.com/dl/2": "<body><h2>Introduction to Attention Heads</h2><h3>History</h3></body>",
}


def fake_fetch(url, timeout):
    html = PAGES.get(url)
    if html is None:
        raise FetchError("status", "not found", url=url, status=404)
    return PageContent(url=url, status=200, html=html, fetched_at="2026-01-01T00:00:00Z")


ENTRIES = [
    ("https://example.com/crime/1", "feature_keywords"),
    ("https://example.com/dl/1", "section_headings"),
    ("https://example.com/crime/missing", "feature_keywords"),
    ("https://example.com/crime/2", "feature_keywords"),
    ("https://example.com/dl/2", "section_headings"),
]


def test_run_pipeline_aggregates_per_category():
    report = run_pipeline(ENTRIES, policy=SignalsPolicy(workers=3), fetch=fake_fetch)

    assert [r.url for r in report.results] == [url for url, _ in ENTRIES]
    assert [c.category for c in report.categories] == [Category.FEATURE_KEYWORDS, Category.SECTION_HEADINGS]

    crime = report.category("feature_keywords")
    assert crime.frequencies == {"location": 1, "arrest": 1, "police": 2, "weapon": 1, "witness": 1}
    assert crime.ranked[0] == ("police", 2)
    assert [entry.label for entry in crime.ranked[1:]] == ["location", "arrest", "weapon", "witness"]
    assert crime.total == 3
    assert crime.failed == 1

    headings = report.category(Category.SECTION_HEADINGS)
    assert headings.frequencies == {"Introduction to...": 2, "Training": 1, "History": 1}
    assert headings.failed == 0

    assert report.audit["total"] == 5
    assert report.audit["success"] == 4
    assert report.audit["failed"] == 1
    assert report.audit["workers"] == 3


def test_run_pipeline_respects_top_n():
    report = run_pipeline(ENTRIES, policy=SignalsPolicy(workers=2, top_n=2), fetch=fake_fetch)
    crime = report.category(Category.FEATURE_KEYWORDS)
    assert len(crime.ranked) == 2
    assert len(crime.frequencies) == 5


def test_category_with_all_failures_yields_empty_report():
    entries = [("https://example.com/nope/1", "section_headings"), ("https://example.com/nope/2", "section_headings")]
    report = run_pipeline(entries, policy=SignalsPolicy(workers=2), fetch=fake_fetch)

    headings = report.category(Category.SECTION_HEADINGS)
    assert headings.frequencies == {}
    assert headings.ranked == []
    assert headings.failed == 2
    assert report.category(Category.FEATURE_KEYWORDS) is None


def test_run_pipeline_is_deterministic_across_runs():
    first = run_pipeline(ENTRIES, policy=SignalsPolicy(workers=4), fetch=fake_fetch)
    second = run_pipeline(ENTRIES, policy=SignalsPolicy(workers=1), fetch=fake_fetch)
    for a, b in zip(first.categories, second.categories):
        assert list(a.frequencies.items()) == list(b.frequencies.items())
        assert a.ranked == b.ranked


def test_build_tasks_accepts_pairs_dicts_and_tasks():
    task = AnalysisTask("https://example.com/c", Category.SECTION_HEADINGS)
    tasks = build_tasks(
        [
            ("https://example.com/a", "CRIME"),
            {"url": " https://example.com/b ", "category": "DEEP_LEARNING"},
            task,
        ]
    )
    assert tasks == [
        AnalysisTask("https://example.com/a", Category.FEATURE_KEYWORDS),
        AnalysisTask("https://example.com/b", Category.SECTION_HEADINGS),
        task,
    ]


def test_build_tasks_rejects_missing_url():
    with pytest.raises(ValueError):
        build_tasks([("", "feature_keywords")])


def test_default_tasks_match_reference_batch():
    tasks = default_tasks()
    assert len(tasks) == 14
    assert [t.category for t in tasks[:10]] == [Category.FEATURE_KEYWORDS] * 10
    assert [t.category for t in tasks[10:]] == [Category.SECTION_HEADINGS] * 4


def test_load_inventory_entries(tmp_path: Path):
    inventory = tmp_path / "inventory.jsonl"
    inventory.write_text(
        json.dumps({"url": "https://example.com/a", "category": "feature_keywords"})
        + "\n\n"
        + json.dumps({"url": "https://example.com/b", "category": "section_headings"})
        + "\n",
        encoding="utf-8",
    )
    entries = load_inventory_entries(inventory)
    assert [e["url"] for e in entries] == ["https://example.com/a", "https://example.com/b"]


@pytest.mark.parametrize(
    "line",
    [
        "not json",
        json.dumps({"url": "https://example.com/a"}),
        json.dumps({"category": "feature_keywords"}),
        json.dumps({"url": "https://example.com/a", "category": "weather"}),
        json.dumps(["https://example.com/a", "feature_keywords"]),
    ],
)
def test_load_inventory_entries_rejects_bad_lines(tmp_path: Path, line):
    inventory = tmp_path / "inventory.jsonl"
    inventory.write_text(line + "\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_inventory_entries(inventory)


def test_policy_from_env(monkeypatch):
    monkeypatch.setenv("PAGESIGNALS_WORKERS", "3")
    monkeypatch.setenv("PAGESIGNALS_TIMEOUT", "not-a-number")
    monkeypatch.setenv("PAGESIGNALS_TOP_N", "5")
    monkeypatch.setenv("PAGESIGNALS_DEADLINE", "90")
    monkeypatch.setenv("PAGESIGNALS_USER_AGENT", "pagesignals-test")

    policy = pipeline._policy_from_env()

    assert policy.workers == 3
    assert policy.timeout == 30.0
    assert policy.top_n == 5
    assert policy.deadline == 90.0
    assert policy.user_agent == "pagesignals-test"


def test_policy_from_env_defaults(monkeypatch):
    for name in ("PAGESIGNALS_WORKERS", "PAGESIGNALS_TIMEOUT", "PAGESIGNALS_TOP_N", "PAGESIGNALS_DEADLINE"):
        monkeypatch.delenv(name, raising=False)
    policy = pipeline._policy_from_env()
    assert policy.workers >= 1
    assert policy.deadline is None
    assert policy.top_n == 10


def test_run_pipeline_closes_the_fetcher_it_creates(monkeypatch):
    created = []

    class RecordingFetcher:
        def __init__(self, config=None):
            self.closed = False
            created.append(self)

        def __call__(self, url, timeout=None):
            return fake_fetch(url, timeout)

        def close(self):
            self.closed = True

    monkeypatch.setattr(pipeline, "PageFetcher", RecordingFetcher)
    batch = run_pipeline(ENTRIES, policy=SignalsPolicy(workers=2))

    assert batch.audit["success"] == 4
    assert len(created) == 1
    assert created[0].closed
