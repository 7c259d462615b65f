"""Pipeline orchestrator — coordinates capture, classification, reporting and approval."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path

from src.ai.client import AIClient, set_debug_dir
from src.approval.commit import commit_approval
from src.approval.engine import ApprovalResult, ApprovalSelector, approve
from src.capture.capturer import CaptureFilter, PlaywrightCaptureProvider, build_targets
from src.diff.classifier import ImageDiffer, classify
from src.diff.image_diff import compare_images
from src.errors import ShotdiffError
from src.models.capture import Captured
from src.models.classification import PixelDiffSummary
from src.models.config import ShotdiffConfig
from src.models.golden import GoldenEntry, GoldenManifest
from src.models.report import RunReport
from src.reporter.comparison_log import log_comparison_results
from src.reporter.reporter import Reporter
from src.storage.asset_store import LocalAssetStore
from src.storage.manifest_store import GoldenManifestStore
from src.storage.run_store import RunStore

logger = logging.getLogger(__name__)


class Orchestrator:
    """Coordinates a screenshot run and the approval of its results."""

    def __init__(self, config: ShotdiffConfig, framework_dir: Path | None = None):
        self.config = config
        self.framework_dir = framework_dir or Path(".shotdiff")
        self.framework_dir.mkdir(parents=True, exist_ok=True)
        self.runs_dir = Path(config.runs_dir)

        set_debug_dir(self.framework_dir / "debug")

        # Optional; without a client the reporter writes a basic summary
        self.ai_client: AIClient | None = None
        if config.ai_summary:
            try:
                self.ai_client = AIClient(model=config.ai_model)
            except EnvironmentError as e:
                logger.warning("AI client unavailable: %s. Using basic summaries.", e)

        self.manifest_store = GoldenManifestStore(Path(config.golden_path))
        self.asset_store = LocalAssetStore(Path(config.assets_dir), config.asset_base_url)

    def run_capture(
        self,
        capture_filter: CaptureFilter | None = None,
        provider: PlaywrightCaptureProvider | None = None,
    ) -> dict:
        """Capture every target, classify against the golden file and write reports."""
        start = time.time()
        logger.info("=== Starting screenshot run for %s ===", self.config.base_url)

        prior = self.manifest_store.load()
        targets = build_targets(self.config)
        run_store = RunStore(self.runs_dir)
        logger.info("Run %s: %d targets, %d golden entries",
                    run_store.run_id, len(targets), len(prior))

        # Stage 1: Capture
        started_at = datetime.now(timezone.utc)
        provider = provider or PlaywrightCaptureProvider(
            self.config, asset_store=self.asset_store, capture_filter=capture_filter,
        )
        captured = provider.capture_sync(targets)
        ended_at = datetime.now(timezone.utc)

        for outcome in captured.values():
            if isinstance(outcome, Captured):
                run_store.save_capture(outcome.image_hash, outcome.image_bytes)

        # Stage 2: Classify
        classification = classify(
            prior, captured, targets,
            differ=self._make_differ(run_store),
            started_at=started_at, ended_at=ended_at,
        )
        log_comparison_results(classification)

        # Stage 3: Report
        report = RunReport(
            run_id=run_store.run_id,
            base_url=self.config.base_url,
            golden_path=self.config.golden_path,
            pages=list(self.config.pages),
            user_agents=[ua.alias for ua in self.config.user_agents],
            classification=classification,
        )
        reporter = Reporter(self.config, self.ai_client)
        report.ai_summary = reporter.summarize(report)
        report_path = run_store.save_report(report)
        reports = reporter.generate_reports(
            report, image_lookup=self._image_lookup(run_store),
        )

        duration = time.time() - start
        logger.info("=== Run complete in %.1fs ===", duration)
        return {
            "run_id": run_store.run_id,
            "duration": round(duration, 2),
            "report_path": str(report_path),
            "metadata": classification.metadata,
            "reports": reports,
            "summary": report.ai_summary,
        }

    def _make_differ(self, run_store: RunStore) -> ImageDiffer:
        """Pixel differ that reads goldens from the asset store and keeps diff images in the run."""
        threshold = self.config.diff_pixel_threshold

        def differ(golden: GoldenEntry, captured: Captured) -> PixelDiffSummary:
            before = self.asset_store.read(golden.image_hash)
            if before is None:
                logger.warning("Golden image %s for %s is not in the asset store",
                               golden.image_hash[:12], captured.identity)
                return PixelDiffSummary(error="golden image not found in asset store")
            result = compare_images(before, captured.image_bytes, pixel_threshold=threshold)
            if result.diff_png is None:
                return result.summary
            path = run_store.save_diff(golden.image_hash, captured.image_hash, result.diff_png)
            return result.summary.model_copy(update={"diff_image_path": str(path)})

        return differ

    def _image_lookup(self, run_store: RunStore):
        def lookup(image_hash: str) -> Path | None:
            for path in (run_store.capture_path(image_hash), self.asset_store.path_for(image_hash)):
                if path.exists():
                    return path
            return None

        return lookup

    def latest_report_path(self) -> Path:
        """The report.json of the most recent run."""
        candidates = sorted(
            self.runs_dir.glob("run_*/report.json"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        if not candidates:
            raise ShotdiffError(
                f"No runs found in {self.runs_dir}",
                recovery_hint="Run 'shotdiff run' first.",
            )
        return candidates[0]

    def approve(
        self, selector: ApprovalSelector, report_path: Path | None = None,
    ) -> ApprovalResult:
        """Approve entries of a saved run and commit them to the golden file."""
        report_path = report_path or self.latest_report_path()
        run_store = RunStore.for_report(report_path)
        report = run_store.load_report()
        logger.info("Approving from run %s (%d changes)", report.run_id, report.num_changes)

        prior = self.manifest_store.load()
        result = approve(report.classification, prior, selector)
        commit_approval(result, run_store.read_capture, self.asset_store, self.manifest_store)
        return result

    def load_golden(self) -> GoldenManifest:
        return self.manifest_store.load()
