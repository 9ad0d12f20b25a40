from __future__ import annotations

import json
import logging
import secrets
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .core.keys import K_CATEGORY, K_COUNT, K_ERROR, K_FREQUENCIES, K_ITEMS, K_LABEL, K_RANKED, K_STATUS, K_URL
from .workflows.analysis import AnalysisTask, Category
from .workflows.doctor import collect_environment_warnings
from .workflows.page_fetch import FetchFunc
from .workflows.pipeline import DEFAULT_POLICY, BatchReport, SignalsPolicy, run_pipeline

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "signals_summary.json"
WALKTHROUGH_FILENAME = "Walkthrough.md"
BAR_WIDTH = 40
RUNS_ROOT = Path("run") / "artifacts"


def generate_run_id(started_at: datetime) -> str:
    """Run ids sort by start time; the hex suffix separates runs in the same second."""

    return f"{started_at.strftime('%Y%m%dT%H%M%SZ')}_{secrets.token_hex(3)}"


def _iso(moment: datetime) -> str:
    return moment.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def chart_title(category: Category, top_n: int) -> str:
    if category is Category.SECTION_HEADINGS:
        return f"Top {top_n} Sub-headings"
    return "Distinctive Features"


def build_summary(
    batch: BatchReport,
    *,
    command: str,
    run_id: str,
    run_dir: Path,
    started_at: datetime,
    finished_at: datetime,
    top_n: int,
) -> Dict[str, Any]:
    items: List[Dict[str, Any]] = []
    for result in batch.results:
        items.append(
            {
                K_URL: result.url,
                K_CATEGORY: result.category.value,
                K_STATUS: "ok" if result.ok else "failed",
                K_ITEMS: list(result.items),
                K_ERROR: result.error,
            }
        )

    categories: List[Dict[str, Any]] = []
    for report in batch.categories:
        categories.append(
            {
                K_CATEGORY: report.category.value,
                "title": chart_title(report.category, top_n),
                "total": report.total,
                "failed": report.failed,
                K_FREQUENCIES: dict(report.frequencies),
                K_RANKED: [{K_LABEL: entry.label, K_COUNT: entry.count} for entry in report.ranked],
            }
        )

    audit = batch.audit or {}
    return {
        "command": command,
        "run_id": run_id,
        "run_dir": str(run_dir),
        "started_at": _iso(started_at),
        "finished_at": _iso(finished_at),
        "duration_ms": int((finished_at - started_at).total_seconds() * 1000),
        "workers": audit.get("workers"),
        "counts": {
            "total": len(items),
            "ok": sum(1 for item in items if item[K_STATUS] == "ok"),
            "failed": sum(1 for item in items if item[K_STATUS] == "failed"),
            "deadline_exceeded": int(audit.get("deadline_exceeded", 0)),
        },
        "categories": categories,
        "items": items,
    }


def render_bar_chart(ranked: Sequence[Dict[str, Any]], width: int = BAR_WIDTH) -> List[str]:
    if not ranked:
        return ["(no data)"]
    max_count = max(int(entry.get(K_COUNT, 0)) for entry in ranked) or 1
    label_width = max(len(str(entry.get(K_LABEL, ""))) for entry in ranked)
    lines = []
    for entry in ranked:
        count = int(entry.get(K_COUNT, 0))
        bar = "#" * max(1, round(count / max_count * width))
        lines.append(f"{str(entry.get(K_LABEL, '')).ljust(label_width)} | {bar} {count}")
    return lines


def render_walkthrough(summary: Dict[str, Any]) -> str:
    lines: List[str] = []
    lines.append("# Walkthrough")
    lines.append("")
    lines.append(f"Run ID: {summary.get('run_id')}")
    lines.append(f"Started: {summary.get('started_at')}")
    lines.append(f"Finished: {summary.get('finished_at')}")
    lines.append(f"Duration: {summary.get('duration_ms')} ms")
    lines.append(f"Workers: {summary.get('workers')}")
    lines.append("")
    env_warnings = summary.get("environment_warnings") or []
    if env_warnings:
        lines.append("## Environment Warnings")
        for warning in env_warnings:
            lines.append(f"- {warning.get('code', 'warning')}: {warning.get('message', '')}")
        lines.append("")
    lines.append("## Counts")
    lines.append("| metric | value |")
    lines.append("| --- | --- |")
    counts = summary.get("counts") or {}
    for key in ("total", "ok", "failed", "deadline_exceeded"):
        lines.append(f"| {key} | {counts.get(key, 0)} |")
    lines.append("")

    for category in summary.get("categories") or []:
        lines.append(f"## {category.get('title')} ({category.get(K_CATEGORY)})")
        lines.append(f"pages: {category.get('total', 0)}, failed: {category.get('failed', 0)}")
        lines.append("")
        lines.append("```")
        lines.extend(render_bar_chart(category.get(K_RANKED) or []))
        lines.append("```")
        lines.append("")

    failed = [item for item in summary.get("items") or [] if item.get(K_STATUS) != "ok"]
    if failed:
        lines.append("## Failed Pages")
        for item in failed:
            lines.append(f"- {item.get(K_URL)}: {item.get(K_ERROR)}")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def write_artifacts(summary: Dict[str, Any], run_dir: Path) -> Tuple[Path, Path]:
    try:
        run_dir.mkdir(parents=True, exist_ok=True)
    except Exception as exc:
        raise RuntimeError(f"Unable to create run dir {run_dir}: {exc}") from exc
    summary_path = run_dir / SUMMARY_FILENAME
    summary_path.write_text(json.dumps(summary, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    walkthrough_path = run_dir / WALKTHROUGH_FILENAME
    walkthrough_path.write_text(render_walkthrough(summary), encoding="utf-8")
    return summary_path, walkthrough_path


def run_report(
    tasks: Sequence[AnalysisTask],
    *,
    command: str,
    out_dir: Optional[Path],
    policy: Optional[SignalsPolicy] = None,
    fetch: Optional[FetchFunc] = None,
    strict: bool = False,
) -> Tuple[Dict[str, Any], int]:
    """Run one batch, write the summary and walkthrough, return (summary, exit code)."""

    policy = policy or DEFAULT_POLICY
    started_at = datetime.now(timezone.utc)
    run_id = generate_run_id(started_at)
    run_dir = out_dir or RUNS_ROOT / run_id

    env_warnings = collect_environment_warnings()
    for warning in env_warnings:
        logger.warning("warning: %s (%s)", warning.get("message"), warning.get("remedy"))

    def _progress(collected: int, total: int, task: AnalysisTask, result) -> None:
        logger.debug("[%d/%d] %s -> %d item(s)", collected, total, task.url, len(result.items))

    batch = run_pipeline(tasks, policy=policy, fetch=fetch, progress_hook=_progress)
    finished_at = datetime.now(timezone.utc)
    summary = build_summary(
        batch,
        command=command,
        run_id=run_id,
        run_dir=run_dir,
        started_at=started_at,
        finished_at=finished_at,
        top_n=policy.top_n,
    )
    if env_warnings:
        summary["environment_warnings"] = env_warnings

    summary_path, _ = write_artifacts(summary, run_dir)
    logger.info("Analysis complete. Report written to %s", summary_path)

    exit_code = 0
    if strict and summary["counts"]["failed"] > 0:
        exit_code = 3
    return summary, exit_code


def apply_overrides(policy: SignalsPolicy, **overrides: Any) -> SignalsPolicy:
    """Return ``policy`` with every non-None override applied.

    A deadline of 0 disables the batch deadline, as PAGESIGNALS_DEADLINE=0 does.
    """

    changes = {key: value for key, value in overrides.items() if value is not None}
    if "deadline" in changes and changes["deadline"] <= 0:
        changes["deadline"] = None
    return replace(policy, **changes) if changes else policy
