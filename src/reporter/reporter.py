"""Report generation orchestration."""

from __future__ import annotations

import logging
from pathlib import Path

from src.ai.client import AIClient
from src.models.config import ShotdiffConfig
from src.models.report import RunReport

from .html_report import ImageLookup, generate_html_report
from .json_report import generate_json_report

logger = logging.getLogger(__name__)


class Reporter:
    """Generates reports from a classified run."""

    def __init__(self, config: ShotdiffConfig, ai_client: AIClient | None = None):
        self.config = config
        self.ai_client = ai_client

    def generate_reports(
        self,
        report: RunReport,
        output_dir: Path | None = None,
        image_lookup: ImageLookup | None = None,
    ) -> dict[str, str]:
        """Generate all configured report formats. Returns format -> file path."""
        out_dir = output_dir or Path(self.config.report_output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        generated = {}
        logger.debug("Report output directory: %s", out_dir)

        if "html" in self.config.report_formats:
            path = out_dir / f"report_{report.run_id}.html"
            generate_html_report(report, path, image_lookup)
            generated["html"] = str(path)
            logger.info("HTML report: %s", path)

        if "json" in self.config.report_formats:
            path = out_dir / f"report_{report.run_id}.json"
            generate_json_report(report, path)
            generated["json"] = str(path)
            logger.info("JSON report: %s", path)

        return generated

    def summarize(self, report: RunReport) -> str:
        """Natural-language summary of a run, AI-written when a client is available."""
        if not self.ai_client:
            return self._generate_basic_summary(report)

        try:
            entries = report.classification.entries
            results_summary = {
                "run_id": report.run_id,
                "counts": report.classification.metadata.counts,
                "changed": [
                    {
                        "screenshot": str(e.identity),
                        "diff_ratio": e.diff.pixels.diff_ratio if e.diff and e.diff.pixels else None,
                    }
                    for e in entries if e.category == "changed"
                ][:30],
                "added": [str(e.identity) for e in entries if e.category == "added"][:30],
                "removed": [str(e.identity) for e in entries if e.category == "removed"][:30],
                "skipped": [
                    {"screenshot": str(e.identity), "reason": e.skip_reason}
                    for e in entries if e.category == "skipped"
                ][:30],
            }
            return self.ai_client.summarize(results_summary)
        except Exception as e:
            logger.warning("AI summary generation failed: %s", e)
            return self._generate_basic_summary(report)

    def _generate_basic_summary(self, report: RunReport) -> str:
        """Generate a basic summary without AI."""
        meta = report.classification.metadata
        c = meta.counts
        parts = [
            f"Compared {meta.total} screenshots in {meta.duration_seconds:.1f}s.",
            f"{c['changed']} changed, {c['added']} added, {c['removed']} removed, "
            f"{c['unchanged']} unchanged, {c['skipped']} skipped.",
        ]
        changed = report.classification.by_category("changed")
        if changed:
            parts.append(f"Changed: {', '.join(str(e.identity) for e in changed[:5])}")
        return " ".join(parts)
