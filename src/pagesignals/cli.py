from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer

from .report import apply_overrides, run_report
from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.pipeline import DEFAULT_POLICY, build_tasks, default_tasks, load_inventory_entries

app = typer.Typer(add_help_option=False, no_args_is_help=False)


def _minimal_help() -> str:
    return """pagesignals

Usage:
  pagesignals run [--inventory <JSONL>] [--workers N] [--timeout S] [--deadline S]
                  [--top N] [--out <DIR>] [--json] [--strict] [--verbose|--quiet]
  pagesignals doctor

Common options:
  --inventory <JSONL>  One {"url": ..., "category": ...} object per line (default: built-in batch).
  --workers N          Worker threads (default: available processing units).
  --deadline S         Stop waiting for results after S seconds (0 disables).
  --json               Print signals_summary.json to stdout only.
  --strict             Exit 3 when any page failed.

Discoverability:
  --help-full     Expanded help + env vars + artifacts.
  --find <query>  Search commands, flags, env vars, artifacts.
  --doctor        Run environment diagnostics and exit.
"""


def _help_full() -> str:
    return """pagesignals CLI

Commands:
  run      Fetch every page, extract signals, write frequency reports.
  doctor   Print environment and dependency diagnostics.

Categories:
  feature_keywords   Presence of crime-reporting keywords in the page body (legacy tag: CRIME).
  section_headings   h2/h3 headings longer than 5 characters (legacy tag: DEEP_LEARNING).

Artifacts:
  signals_summary.json  Stable JSON summary: counts, per-page items, per-category frequencies and rankings.
  Walkthrough.md        Deterministic markdown with one text bar chart per category.

Env vars (overridden by flags):
  PAGESIGNALS_WORKERS
  PAGESIGNALS_TIMEOUT
  PAGESIGNALS_TOP_N
  PAGESIGNALS_DEADLINE
  PAGESIGNALS_USER_AGENT

Exit codes:
  0  report written (page failures are reported, not fatal)
  2  invalid input (inventory missing or malformed)
  3  fatal pipeline error, or --strict with failed pages
"""


_FIND_INDEX = [
    ("command", "run", "Fetch pages and write frequency reports."),
    ("command", "doctor", "Print environment and dependency diagnostics."),
    ("flag", "--inventory", "JSONL inventory of url/category objects."),
    ("flag", "--workers", "Worker thread count."),
    ("flag", "--timeout", "Per-page fetch timeout in seconds."),
    ("flag", "--deadline", "Batch deadline in seconds."),
    ("flag", "--top", "Ranked entries per category."),
    ("flag", "--out", "Write artifacts into this directory."),
    ("flag", "--json", "Print summary JSON to stdout only."),
    ("flag", "--strict", "Exit 3 when any page failed."),
    ("flag", "--verbose", "Debug logging."),
    ("flag", "--quiet", "Warnings only."),
    ("flag", "--help-full", "Expanded help, env vars, artifacts."),
    ("flag", "--find", "Search commands, flags, env vars, artifacts."),
    ("flag", "--doctor", "Run environment diagnostics and exit."),
    ("env", "PAGESIGNALS_WORKERS", "Default worker thread count."),
    ("env", "PAGESIGNALS_TIMEOUT", "Default per-page timeout (seconds)."),
    ("env", "PAGESIGNALS_TOP_N", "Default ranked entries per category."),
    ("env", "PAGESIGNALS_DEADLINE", "Default batch deadline (seconds)."),
    ("env", "PAGESIGNALS_USER_AGENT", "User-Agent header for page fetches."),
    ("artifact", "signals_summary.json", "Stable summary output."),
    ("artifact", "Walkthrough.md", "Deterministic walkthrough with bar charts."),
]


def _run_find(query: str) -> str:
    terms = (query or "").lower().split()
    if not terms:
        return ""
    hits = [entry for entry in _FIND_INDEX if all(term in " ".join(entry).lower() for term in terms)]
    return "\n".join(f"{kind:<8} {name:<24} {desc}" for kind, name, desc in hits)


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr, force=True)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
    help_full: bool = typer.Option(False, "--help-full", is_eager=True, help="Show expanded help."),
    find: Optional[str] = typer.Option(None, "--find", is_eager=True, help="Search commands, flags, env vars, artifacts."),
    doctor: bool = typer.Option(False, "--doctor", is_eager=True, help="Run environment diagnostics and exit."),
) -> None:
    if help_full:
        typer.echo(_help_full())
        raise typer.Exit(code=0)
    if find is not None:
        output = _run_find(find)
        if output:
            typer.echo(output)
        raise typer.Exit(code=0)
    if doctor:
        report = build_doctor_report()
        typer.echo(format_doctor_report(report))
        raise typer.Exit(code=0 if report.get("ok", True) else 2)
    if help or ctx.invoked_subcommand is None:
        typer.echo(_minimal_help())
        raise typer.Exit(code=0)


@app.command("doctor", add_help_option=True)
def doctor_cmd(
    out: Optional[Path] = typer.Option(None, "--out", help="Output directory to check for writability."),
) -> None:
    """Print environment and dependency diagnostics."""
    report = build_doctor_report(out_dir=out)
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else 2)


@app.command("run", add_help_option=True)
def run_cmd(
    inventory: Optional[Path] = typer.Option(None, "--inventory", help="JSONL inventory (default: built-in batch)."),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Worker thread count."),
    timeout: Optional[float] = typer.Option(None, "--timeout", min=0.1, help="Per-page fetch timeout (seconds)."),
    deadline: Optional[float] = typer.Option(None, "--deadline", min=0.0, help="Batch deadline (seconds)."),
    top: Optional[int] = typer.Option(None, "--top", help="Ranked entries per category."),
    out: Optional[Path] = typer.Option(None, "--out", help="Write artifacts into this directory (no subdir)."),
    json_out: bool = typer.Option(False, "--json", help="Print summary JSON to stdout only."),
    strict: bool = typer.Option(False, "--strict", help="Exit 3 when any page failed."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Warnings only."),
) -> None:
    _configure_logging(verbose, quiet or json_out)
    try:
        if inventory is not None:
            if not inventory.exists():
                raise FileNotFoundError(f"Inventory not found: {inventory}")
            tasks = build_tasks(load_inventory_entries(inventory))
            command = "run-inventory"
        else:
            tasks = default_tasks()
            command = "run"
    except (ValueError, FileNotFoundError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=2)

    policy = apply_overrides(DEFAULT_POLICY, workers=workers, timeout=timeout, deadline=deadline, top_n=top)
    try:
        summary, exit_code = run_report(tasks, command=command, out_dir=out, policy=policy, strict=strict)
    except Exception as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=3)
    if json_out:
        sys.stdout.write(json.dumps(summary, ensure_ascii=False) + "\n")
    else:
        typer.echo(f"report: {summary.get('run_dir')}")
    raise typer.Exit(code=exit_code)
