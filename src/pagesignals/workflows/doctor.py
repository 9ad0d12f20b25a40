from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .dispatcher import default_worker_count
from .signals_config import HTML_PARSER

_NUMERIC_ENV = {
    "PAGESIGNALS_WORKERS": int,
    "PAGESIGNALS_TOP_N": int,
    "PAGESIGNALS_TIMEOUT": float,
    "PAGESIGNALS_DEADLINE": float,
}
_OTHER_ENV = ("PAGESIGNALS_USER_AGENT",)


def _check_parser_available(parser: str = HTML_PARSER) -> bool:
    try:
        from bs4 import BeautifulSoup

        BeautifulSoup("<p></p>", parser)
        return True
    except Exception:
        return False


def _check_writable(path: Path) -> bool:
    """True when ``path`` exists as a writable dir or can be created under one."""

    probe = path
    while not probe.exists():
        if probe.parent == probe:
            return False
        probe = probe.parent
    return probe.is_dir() and os.access(probe, os.W_OK)


def collect_environment_warnings() -> List[Dict[str, str]]:
    """Return env settings that will be ignored and replaced by defaults."""

    warnings: List[Dict[str, str]] = []
    for name, cast in _NUMERIC_ENV.items():
        raw = os.getenv(name)
        if raw is None or not raw.strip():
            continue
        try:
            value = cast(raw.strip())
        except ValueError:
            warnings.append(
                {
                    "code": f"{name.lower()}_invalid",
                    "message": f"{name}={raw!r} is not a valid {cast.__name__}; default used",
                    "remedy": f"Unset {name} or give it a positive number.",
                }
            )
            continue
        if value <= 0 and name != "PAGESIGNALS_TOP_N":
            warnings.append(
                {
                    "code": f"{name.lower()}_non_positive",
                    "message": f"{name}={raw!r} must be positive; default used",
                    "remedy": f"Set {name} above zero.",
                }
            )
    if not _check_parser_available():
        warnings.append(
            {
                "code": "lxml_missing",
                "message": f"BeautifulSoup parser '{HTML_PARSER}' is unavailable; every page will fail to parse",
                "remedy": "pip install lxml",
            }
        )
    return warnings


def build_doctor_report(*, out_dir: Optional[Path] = None) -> Dict[str, Any]:
    target = Path(out_dir) if out_dir else Path("run") / "artifacts"
    checks = [
        {"name": "lxml", "ok": _check_parser_available(), "detail": f"HTML parser '{HTML_PARSER}'"},
        {"name": "output_dir", "ok": _check_writable(target), "detail": str(target)},
    ]
    warnings = collect_environment_warnings()
    return {
        "ok": all(check["ok"] for check in checks) and not warnings,
        "workers": default_worker_count(),
        "checks": checks,
        "overrides": {name: os.environ[name] for name in list(_NUMERIC_ENV) + list(_OTHER_ENV) if os.getenv(name)},
        "environment_warnings": warnings,
    }


def format_doctor_report(report: Dict[str, Any]) -> str:
    lines = ["pagesignals doctor", f"workers available: {report.get('workers')}", ""]
    for check in report.get("checks", []):
        mark = "ok" if check.get("ok") else "FAIL"
        lines.append(f"[{mark}] {check.get('name')}: {check.get('detail')}")
    overrides = report.get("overrides") or {}
    lines.append("")
    if overrides:
        lines.append("Overrides:")
        lines.extend(f"  {name}={value}" for name, value in overrides.items())
    else:
        lines.append("Overrides: none (defaults in use)")
    for warning in report.get("environment_warnings") or []:
        lines.append(f"warning: {warning.get('message')} ({warning.get('remedy')})")
    return "\n".join(lines) + "\n"
