"""End-to-end tests for the orchestrator and CLI with a fake capture provider."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from conftest import ident, make_png
from src.approval.engine import ApprovalSelector
from src.cli import cli
from src.errors import PersistenceFailure, ShotdiffError, StaleApproval
from src.models.capture import Captured, Failed, hash_image
from src.orchestrator import Orchestrator
from src.storage.run_store import RunStore

WHITE = make_png((255, 255, 255))
BLACK = make_png((0, 0, 0))


class FakeProvider:
    """Returns canned images per identity; targets without an image fail."""

    def __init__(self, images: dict, asset_store=None):
        self.images = images
        self.asset_store = asset_store

    def capture_sync(self, targets):
        outcomes = {}
        for identity in targets:
            png = self.images.get(identity)
            if png is None:
                outcomes[identity] = Failed(identity=identity, reason="timeout")
                continue
            url = self.asset_store.url_for(hash_image(png)) if self.asset_store else ""
            outcomes[identity] = Captured.from_bytes(identity, png, url)
        return outcomes


@pytest.fixture
def orchestrator(shotdiff_config, tmp_path: Path) -> Orchestrator:
    return Orchestrator(shotdiff_config, framework_dir=tmp_path / ".shotdiff")


def _all_targets(png: bytes) -> dict:
    return {ident(p, ua): png for p in ("pageA", "pageB") for ua in ("chrome", "firefox")}


class TestOrchestratorRun:

    def test_first_run_everything_added(self, orchestrator):
        provider = FakeProvider(_all_targets(WHITE), orchestrator.asset_store)

        results = orchestrator.run_capture(provider=provider)

        meta = results["metadata"]
        assert meta.counts["added"] == 4
        assert meta.num_changes == 4
        assert Path(results["report_path"]).exists()
        assert set(results["reports"]) == {"html", "json"}
        assert results["summary"].startswith("Compared 4 screenshots")
        # Captures are kept with the run for later approval
        run_store = RunStore.for_report(Path(results["report_path"]))
        assert run_store.read_capture(hash_image(WHITE)) == WHITE

    def test_run_does_not_touch_golden_file(self, orchestrator, shotdiff_config):
        orchestrator.run_capture(provider=FakeProvider(_all_targets(WHITE)))
        assert not Path(shotdiff_config.golden_path).exists()

    def test_approve_then_rerun_unchanged(self, orchestrator):
        provider = FakeProvider(_all_targets(WHITE), orchestrator.asset_store)
        orchestrator.run_capture(provider=provider)

        result = orchestrator.approve(ApprovalSelector.all())

        assert len(result.manifest) == 4
        assert orchestrator.asset_store.read(hash_image(WHITE)) == WHITE
        assert orchestrator.load_golden() == result.manifest

        rerun = orchestrator.run_capture(provider=provider)
        assert rerun["metadata"].counts["unchanged"] == 4
        assert rerun["metadata"].num_changes == 0

    def test_changed_screenshot_gets_pixel_diff(self, orchestrator):
        orchestrator.run_capture(provider=FakeProvider(_all_targets(WHITE), orchestrator.asset_store))
        orchestrator.approve(ApprovalSelector.all())

        images = _all_targets(WHITE)
        images[ident("pageA", "chrome")] = BLACK
        results = orchestrator.run_capture(provider=FakeProvider(images, orchestrator.asset_store))

        report = RunStore.for_report(Path(results["report_path"])).load_report()
        entry = report.classification.get(ident("pageA", "chrome"))
        assert entry.category == "changed"
        assert entry.diff.pixels.changed_pixels == 200
        assert Path(entry.diff.pixels.diff_image_path).exists()

    def test_missing_golden_image_reported(self, orchestrator):
        orchestrator.run_capture(provider=FakeProvider(_all_targets(WHITE), orchestrator.asset_store))
        orchestrator.approve(ApprovalSelector.all())
        os.remove(orchestrator.asset_store.path_for(hash_image(WHITE)))

        images = _all_targets(WHITE)
        images[ident("pageA", "chrome")] = BLACK
        results = orchestrator.run_capture(provider=FakeProvider(images, orchestrator.asset_store))

        report = RunStore.for_report(Path(results["report_path"])).load_report()
        pixels = report.classification.get(ident("pageA", "chrome")).diff.pixels
        assert pixels.error == "golden image not found in asset store"

    def test_failed_capture_keeps_golden(self, orchestrator):
        orchestrator.run_capture(provider=FakeProvider(_all_targets(WHITE), orchestrator.asset_store))
        first = orchestrator.approve(ApprovalSelector.all())

        images = _all_targets(BLACK)
        del images[ident("pageB", "firefox")]
        orchestrator.run_capture(provider=FakeProvider(images, orchestrator.asset_store))
        result = orchestrator.approve(ApprovalSelector.all())

        assert result.manifest.lookup(ident("pageB", "firefox")) == first.manifest.lookup(ident("pageB", "firefox"))
        assert result.manifest.lookup(ident("pageA", "chrome")).image_hash == hash_image(BLACK)


class TestOrchestratorApprove:

    def test_no_runs(self, orchestrator):
        with pytest.raises(ShotdiffError, match="No runs found"):
            orchestrator.approve(ApprovalSelector.all())

    def test_upload_failure_leaves_golden_untouched(self, orchestrator, shotdiff_config):
        orchestrator.run_capture(provider=FakeProvider(_all_targets(WHITE), orchestrator.asset_store))

        with patch.object(orchestrator.asset_store, "upload", side_effect=PersistenceFailure("denied")):
            with pytest.raises(PersistenceFailure):
                orchestrator.approve(ApprovalSelector.all())

        assert not Path(shotdiff_config.golden_path).exists()

    def test_explicit_report_path(self, orchestrator):
        first = orchestrator.run_capture(provider=FakeProvider(_all_targets(WHITE), orchestrator.asset_store))
        orchestrator.run_capture(provider=FakeProvider(_all_targets(BLACK), orchestrator.asset_store))

        result = orchestrator.approve(ApprovalSelector.all(), Path(first["report_path"]))

        assert result.manifest.lookup(ident("pageA", "chrome")).image_hash == hash_image(WHITE)

    def test_older_report_cannot_revert_newer_goldens(self, orchestrator):
        first = orchestrator.run_capture(provider=FakeProvider(_all_targets(WHITE), orchestrator.asset_store))
        orchestrator.approve(ApprovalSelector.all())
        orchestrator.run_capture(provider=FakeProvider(_all_targets(BLACK), orchestrator.asset_store))
        orchestrator.approve(ApprovalSelector.all())
        saved = orchestrator.load_golden()

        with pytest.raises(StaleApproval, match="shotdiff run"):
            orchestrator.approve(ApprovalSelector.all(), Path(first["report_path"]))

        assert orchestrator.load_golden() == saved
        assert saved.lookup(ident("pageA", "chrome")).image_hash == hash_image(BLACK)

    def test_reapproving_same_report_is_noop(self, orchestrator):
        orchestrator.run_capture(provider=FakeProvider(_all_targets(WHITE), orchestrator.asset_store))
        orchestrator.approve(ApprovalSelector.all())

        assert orchestrator.approve(ApprovalSelector.all()).is_noop


class TestCli:

    @pytest.fixture
    def project(self, shotdiff_config, tmp_path: Path, monkeypatch) -> Path:
        monkeypatch.chdir(tmp_path)
        shotdiff_config.save(tmp_path / "shotdiff.json")
        return tmp_path

    @staticmethod
    def _patch_provider(images: dict):
        return patch(
            "src.orchestrator.PlaywrightCaptureProvider",
            side_effect=lambda config, asset_store=None, capture_filter=None: FakeProvider(images, asset_store),
        )

    def test_run_approve_golden(self, project, shotdiff_config):
        runner = CliRunner()
        with self._patch_provider(_all_targets(WHITE)):
            result = runner.invoke(cli, ["run"])
        assert result.exit_code == 0, result.output
        assert "4 screenshots changed!" in result.output

        result = runner.invoke(cli, ["approve", "--all"])
        assert result.exit_code == 0, result.output
        assert "updated pageA > chrome" in result.output

        result = runner.invoke(cli, ["golden"])
        assert result.exit_code == 0, result.output
        assert "pageB" in result.output

        golden = json.loads(Path(shotdiff_config.golden_path).read_text())
        assert golden["version"] == 1
        assert len(golden["screenshots"]["pageA"]) == 2

    def test_fail_on_changes(self, project):
        with self._patch_provider(_all_targets(WHITE)):
            result = CliRunner().invoke(cli, ["run", "--fail-on-changes"])
        assert result.exit_code == 2

    def test_approve_single_screenshot(self, project, shotdiff_config):
        runner = CliRunner()
        with self._patch_provider(_all_targets(WHITE)):
            runner.invoke(cli, ["run"])

        result = runner.invoke(cli, ["approve", "pageA > firefox"])

        assert result.exit_code == 0, result.output
        data = json.loads(Path(shotdiff_config.golden_path).read_text())
        assert list(data["screenshots"]) == ["pageA"]
        assert list(data["screenshots"]["pageA"]) == ["firefox"]

    def test_approve_requires_selection(self, project):
        result = CliRunner().invoke(cli, ["approve"])
        assert result.exit_code == 1
        assert "Nothing selected" in result.output

    def test_approve_bad_token(self, project):
        result = CliRunner().invoke(cli, ["approve", "pageA"])
        assert result.exit_code == 1

    def test_approve_without_runs(self, project):
        result = CliRunner().invoke(cli, ["approve", "--all"])
        assert result.exit_code == 1
        assert "No runs found" in result.output

    def test_missing_config(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = CliRunner().invoke(cli, ["run"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_blank_page_in_config_is_config_error(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "shotdiff.json").write_text(json.dumps({"base_url": "http://x", "pages": ["/"]}))

        result = CliRunner().invoke(cli, ["run"])

        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "Invalid config" in result.output

    def test_approve_stale_report(self, project):
        runner = CliRunner()
        with self._patch_provider(_all_targets(WHITE)):
            runner.invoke(cli, ["run"])
        first_report = next((project / "runs").glob("*/report.json"))
        runner.invoke(cli, ["approve", "--all"])
        with self._patch_provider(_all_targets(BLACK)):
            runner.invoke(cli, ["run"])
        runner.invoke(cli, ["approve", "--all"])

        result = runner.invoke(cli, ["approve", "--all", "--report", str(first_report)])

        assert result.exit_code == 1
        assert "Golden file changed since this run" in result.output

    def test_init(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = CliRunner().invoke(cli, ["init", "--base-url", "http://localhost:9000"])
        assert result.exit_code == 0, result.output
        data = json.loads((tmp_path / "shotdiff.json").read_text())
        assert data["base_url"] == "http://localhost:9000"
