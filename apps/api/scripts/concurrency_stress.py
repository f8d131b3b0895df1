#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import platform
import sys
from dataclasses import fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fms_api.concurrency_stress import ConcurrencyStressConfig, run_concurrency_stress_suite


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Race task completions and project starts against one store and report the invariants."
    )
    parser.add_argument(
        "--evidence-dir",
        type=Path,
        default=Path(__file__).resolve().parents[3] / "docs" / "evidence" / "concurrency",
        help="directory for the JSON and Markdown reports",
    )
    parser.add_argument("--no-markdown", action="store_true", help="write only the JSON report")
    for field in fields(ConcurrencyStressConfig):
        parser.add_argument(f"--{field.name.replace('_', '-')}", type=int, default=field.default)
    return parser.parse_args()


def _config_from_args(args: argparse.Namespace) -> ConcurrencyStressConfig:
    return ConcurrencyStressConfig(**{field.name: getattr(args, field.name) for field in fields(ConcurrencyStressConfig)})


def _render_markdown(report: dict[str, Any]) -> str:
    summary = report["summary"]
    lines = [
        f"# Task lifecycle races ({report['generated_at_utc']})",
        "",
        f"Python `{report['python']}`: **{summary['overall_status']}**, "
        f"{summary['invariants_passed']}/{summary['invariants_total']} invariants held.",
        "",
        "| scenario | invariant | result |",
        "|---|---|---|",
    ]
    for scenario in report["scenarios"]:
        for invariant in scenario["invariants"]:
            result = "ok" if invariant["passed"] else f"failed in {len(invariant['actual_failures'])} iteration(s)"
            lines.append(f"| {scenario['name']} | {invariant['description']} | {result} |")

    totals = [
        f"- {scenario['name']}: " + ", ".join(f"{key}={value}" for key, value in scenario["metrics_total"].items())
        for scenario in report["scenarios"]
    ]
    return "\n".join(lines + ["", "## Totals", "", *totals])


def main() -> int:
    args = parse_args()
    try:
        report = run_concurrency_stress_suite(_config_from_args(args))
    except ValueError as exc:
        print(f"[concurrency] {exc}", file=sys.stderr)
        return 2
    report["python"] = platform.python_version()

    stamp = datetime.now(tz=timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    args.evidence_dir.mkdir(parents=True, exist_ok=True)
    json_path = args.evidence_dir / f"concurrency-stress-{stamp}.json"
    json_path.write_text(json.dumps(report, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    print(f"[concurrency] {json_path}")
    if not args.no_markdown:
        md_path = json_path.with_suffix(".md")
        md_path.write_text(_render_markdown(report) + "\n", encoding="utf-8")
        print(f"[concurrency] {md_path}")

    print(f"[concurrency] {report['summary']['overall_status']}")
    return 0 if report["summary"]["overall_status"] == "pass" else 1


if __name__ == "__main__":
    raise SystemExit(main())
