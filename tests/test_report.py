import json
import re
import typing
from datetime import datetime, timezone
from pathlib import Path

from pagesignals.report import (
    SUMMARY_FILENAME,
    WALKTHROUGH_FILENAME,
    apply_overrides,
    build_summary,
    generate_run_id,
    render_bar_chart,
    render_walkthrough,
    run_report,
)
from pagesignals.workflows.aggregate import RankedEntry
from pagesignals.workflows.analysis import AnalysisResult, AnalysisTask, Category
from pagesignals.workflows.page_fetch import FetchError, FetchFunc, PageContent
from pagesignals.workflows.pipeline import BatchReport, CategoryReport, SignalsPolicy


def _fetch(url, timeout):
    if url.endswith("/down"):
        raise FetchError("network", "refused", url=url)
    return PageContent(
        url=url,
        status=200,
        html="<body><h2>Convolutional layers</h2><p>police and evidence</p></body>",
        fetched_at="now",
    )


def _batch() -> BatchReport:
    results = [
        AnalysisResult("https://example.com/a", Category.FEATURE_KEYWORDS, ("police", "arrest")),
        AnalysisResult("https://example.com/b", Category.FEATURE_KEYWORDS, (), "timeout"),
    ]
    report = CategoryReport(
        category=Category.FEATURE_KEYWORDS,
        frequencies={"police": 1, "arrest": 1},
        ranked=[RankedEntry("police", 1), RankedEntry("arrest", 1)],
        total=2,
        failed=1,
    )
    return BatchReport(results=results, categories=[report], audit={"workers": 2, "deadline_exceeded": 0})


def test_generate_run_id_uses_start_time():
    started = datetime(2026, 1, 2, 15, 30, 45, tzinfo=timezone.utc)
    run_id = generate_run_id(started)
    assert re.match(r"^20260102T153045Z_[0-9a-f]{6}$", run_id)


def test_build_summary_counts_and_rankings():
    started = datetime(2026, 1, 2, 15, 30, 45, tzinfo=timezone.utc)
    finished = datetime(2026, 1, 2, 15, 31, 12, tzinfo=timezone.utc)
    summary = build_summary(
        _batch(),
        command="run",
        run_id="20260102T153045Z_a1b2c3",
        run_dir=Path("run/artifacts/x"),
        started_at=started,
        finished_at=finished,
        top_n=10,
    )
    assert summary["started_at"] == "2026-01-02T15:30:45Z"
    assert summary["duration_ms"] == 27000
    assert summary["counts"] == {"total": 2, "ok": 1, "failed": 1, "deadline_exceeded": 0}
    category = summary["categories"][0]
    assert category["category"] == "feature_keywords"
    assert category["title"] == "Distinctive Features"
    assert category["ranked"] == [{"label": "police", "count": 1}, {"label": "arrest", "count": 1}]
    assert summary["items"][1]["status"] == "failed"
    assert summary["items"][1]["error"] == "timeout"
    json.dumps(summary)


def test_render_bar_chart_scales_to_max():
    lines = render_bar_chart([{"label": "big", "count": 4}, {"label": "small", "count": 1}], width=8)
    assert lines[0] == "big   | ######## 4"
    assert lines[1] == "small | ## 1"
    assert render_bar_chart([]) == ["(no data)"]


def test_render_walkthrough_deterministic():
    summary = {
        "run_id": "20260102T153045Z_a1b2c3",
        "started_at": "2026-01-02T15:30:45Z",
        "finished_at": "2026-01-02T15:31:12Z",
        "duration_ms": 27000,
        "workers": 4,
        "counts": {"total": 2, "ok": 1, "failed": 1, "deadline_exceeded": 0},
        "categories": [
            {
                "category": "section_headings",
                "title": "Top 10 Sub-headings",
                "total": 2,
                "failed": 1,
                "ranked": [{"label": "Training", "count": 2}],
            }
        ],
        "items": [
            {"url": "https://example.com/a", "status": "ok", "error": None},
            {"url": "https://example.com/b", "status": "failed", "error": "timeout"},
        ],
    }
    output = render_walkthrough(summary)
    assert output == render_walkthrough(summary)
    assert output.startswith("# Walkthrough")
    assert "Run ID: 20260102T153045Z_a1b2c3" in output
    assert "## Top 10 Sub-headings (section_headings)" in output
    assert "Training | " in output
    assert "## Failed Pages" in output
    assert "- https://example.com/b: timeout" in output


def test_run_report_writes_artifacts(tmp_path: Path):
    tasks = [
        AnalysisTask("https://example.com/a", Category.FEATURE_KEYWORDS),
        AnalysisTask("https://example.com/down", Category.FEATURE_KEYWORDS),
        AnalysisTask("https://example.com/c", Category.SECTION_HEADINGS),
    ]
    summary, exit_code = run_report(
        tasks,
        command="run",
        out_dir=tmp_path,
        policy=SignalsPolicy(workers=2),
        fetch=_fetch,
    )

    assert exit_code == 0
    assert summary["counts"]["total"] == 3
    assert summary["counts"]["failed"] == 1
    written = json.loads((tmp_path / SUMMARY_FILENAME).read_text(encoding="utf-8"))
    assert written["run_id"] == summary["run_id"]
    headings = [c for c in written["categories"] if c["category"] == "section_headings"][0]
    assert headings["frequencies"] == {"Convolutional l...": 1}
    assert (tmp_path / WALKTHROUGH_FILENAME).read_text(encoding="utf-8").startswith("# Walkthrough")


def test_run_report_strict_flags_failures(tmp_path: Path):
    tasks = [AnalysisTask("https://example.com/down", Category.FEATURE_KEYWORDS)]
    summary, exit_code = run_report(
        tasks,
        command="run",
        out_dir=tmp_path,
        policy=SignalsPolicy(workers=1),
        fetch=_fetch,
        strict=True,
    )
    assert exit_code == 3
    assert summary["categories"][0]["frequencies"] == {}


def test_apply_overrides_skips_none():
    policy = SignalsPolicy(workers=2, top_n=10)
    updated = apply_overrides(policy, workers=None, top_n=3, deadline=5.0)
    assert updated.workers == 2
    assert updated.top_n == 3
    assert updated.deadline == 5.0
    assert apply_overrides(policy, workers=None) is policy


def test_apply_overrides_zero_deadline_disables_it():
    policy = SignalsPolicy(workers=2, deadline=30.0)
    updated = apply_overrides(policy, deadline=0.0)
    assert updated.deadline is None


def test_run_report_fetch_parameter_is_a_fetch_func():
    hints = typing.get_type_hints(run_report)
    assert hints["fetch"] == typing.Optional[FetchFunc]
