"""Run artifacts — captured screenshots, diff images and the run report."""

from __future__ import annotations

import json
import logging
import uuid
from pathlib import Path

from pydantic import ValidationError

from src.errors import ShotdiffError
from src.models.report import RunReport

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:8]}"


class RunStore:
    """Files of a single run under ``<runs_dir>/<run_id>/``."""

    def __init__(self, runs_dir: Path, run_id: str | None = None):
        self.run_id = run_id or new_run_id()
        self.run_dir = Path(runs_dir) / self.run_id

    @classmethod
    def for_report(cls, report_path: Path) -> "RunStore":
        """Open the run a saved ``report.json`` belongs to."""
        report_path = Path(report_path)
        return cls(report_path.parent.parent, report_path.parent.name)

    @property
    def report_path(self) -> Path:
        return self.run_dir / "report.json"

    def capture_path(self, image_hash: str) -> Path:
        return self.run_dir / "captures" / f"{image_hash}.png"

    def diff_path(self, before_hash: str, after_hash: str) -> Path:
        return self.run_dir / "diffs" / f"{before_hash[:12]}_{after_hash[:12]}.png"

    def save_capture(self, image_hash: str, image_bytes: bytes) -> Path:
        path = self.capture_path(image_hash)
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(image_bytes)
        return path

    def read_capture(self, image_hash: str) -> bytes | None:
        path = self.capture_path(image_hash)
        if not path.exists():
            return None
        return path.read_bytes()

    def save_diff(self, before_hash: str, after_hash: str, diff_png: bytes) -> Path:
        path = self.diff_path(before_hash, after_hash)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(diff_png)
        return path

    def save_report(self, report: RunReport) -> Path:
        self.run_dir.mkdir(parents=True, exist_ok=True)
        with open(self.report_path, "w") as f:
            json.dump(report.model_dump(mode="json"), f, indent=2)
        logger.debug("Saved run report to %s", self.report_path)
        return self.report_path

    def load_report(self) -> RunReport:
        if not self.report_path.exists():
            raise ShotdiffError(
                f"Run report not found: {self.report_path}",
                recovery_hint="Run 'shotdiff run' first, or pass --report.",
            )
        try:
            with open(self.report_path) as f:
                return RunReport.model_validate(json.load(f))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ShotdiffError(f"Run report is unreadable: {e}", context={"path": self.report_path}) from e
