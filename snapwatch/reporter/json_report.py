"""JSON report output."""

from __future__ import annotations

import json
from pathlib import Path

from snapwatch.models.outcome import RunResult


def generate_json_report(run_result: RunResult, output_path: Path) -> None:
    """Write a machine-readable JSON report of one run."""
    report = run_result.model_dump(mode="json")
    report["alerts"] = [
        {
            "recipient": e.recipient.email,
            "target_url": e.outcome.target_url,
            "viewport": e.outcome.viewport.key,
            "mismatch_percent": e.outcome.mismatch_percent,
            "tolerance_percent": e.outcome.tolerance_percent,
            "diagnostics": e.outcome.diagnostics,
        }
        for e in run_result.entries
        if e.outcome.is_alert_worthy
    ]

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(report, f, indent=2, default=str)
