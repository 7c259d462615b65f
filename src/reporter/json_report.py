"""JSON report output."""

from __future__ import annotations

import json
from pathlib import Path

from src.models.report import RunReport


def generate_json_report(report: RunReport, output_path: Path) -> None:
    """Write a machine-readable JSON report, with entries also grouped by category."""
    data = report.model_dump(mode="json")
    data["screenshots"] = {
        category: [str(e.identity) for e in report.classification.by_category(category)]
        for category in report.classification.metadata.counts
    }

    with open(output_path, "w") as f:
        json.dump(data, f, indent=2, default=str)
