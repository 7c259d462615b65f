"""Tests for the approval engine and commit."""

from unittest.mock import Mock

import pytest

from conftest import captured, golden_for, ident, make_png
from src.approval.commit import commit_approval
from src.approval.engine import ApprovalSelector, approve
from src.diff.classifier import classify
from src.errors import InvariantViolation, PersistenceFailure, StaleApproval
from src.models.capture import Failed, hash_image
from src.models.classification import Classification, ClassificationEntry
from src.models.golden import GoldenManifest

PNG_X = make_png((10, 10, 10))
PNG_X2 = make_png((200, 10, 10))
PNG_Y = make_png((10, 200, 10))
PNG_Z = make_png((10, 10, 200))


@pytest.fixture
def prior() -> GoldenManifest:
    return GoldenManifest({
        ident("pageA", "chrome"): golden_for(PNG_X),
        ident("pageB", "chrome"): golden_for(PNG_X),
        ident("pageC", "firefox"): golden_for(PNG_Z),
        ident("pageD", "chrome"): golden_for(PNG_X),
    })


@pytest.fixture
def classification(prior) -> Classification:
    """pageA changed, pageB unchanged, pageC removed, pageD skipped, pageE added."""
    targets = [ident(p, "chrome") for p in ("pageA", "pageB", "pageD", "pageE")]
    outcomes = {
        ident("pageA", "chrome"): captured(ident("pageA", "chrome"), PNG_X2),
        ident("pageB", "chrome"): captured(ident("pageB", "chrome"), PNG_X),
        ident("pageD", "chrome"): Failed(identity=ident("pageD", "chrome"), reason="timeout"),
        ident("pageE", "chrome"): captured(ident("pageE", "chrome"), PNG_Y),
    }
    return classify(prior, outcomes, targets)


class TestApprovalSelector:

    def test_parse_identities(self):
        selector = ApprovalSelector.parse(["pageA > chrome", " pageB > firefox "])
        assert not selector.approve_all
        assert selector.identities == frozenset({ident("pageA", "chrome"), ident("pageB", "firefox")})

    def test_parse_all_token(self):
        assert ApprovalSelector.parse(["pageA > chrome", "ALL"]).approve_all

    def test_parse_invalid_token(self):
        with pytest.raises(ValueError):
            ApprovalSelector.parse(["pageA"])

    def test_selects(self):
        selector = ApprovalSelector.of([ident("pageA", "chrome")])
        assert selector.selects(ident("pageA", "chrome"))
        assert not selector.selects(ident("pageB", "chrome"))
        assert ApprovalSelector.all().selects(ident("anything", "chrome"))


class TestApprove:

    def test_approve_all(self, classification, prior):
        result = approve(classification, prior, ApprovalSelector.all())

        manifest = result.manifest
        assert manifest.lookup(ident("pageA", "chrome")).image_hash == hash_image(PNG_X2)
        assert manifest.lookup(ident("pageE", "chrome")).image_hash == hash_image(PNG_Y)
        assert ident("pageC", "firefox") not in manifest
        # Unchanged and skipped keep their prior goldens
        assert manifest.lookup(ident("pageB", "chrome")) == prior.lookup(ident("pageB", "chrome"))
        assert manifest.lookup(ident("pageD", "chrome")) == prior.lookup(ident("pageD", "chrome"))
        assert set(result.updated) == {ident("pageA", "chrome"), ident("pageE", "chrome")}
        assert result.removed == frozenset({ident("pageC", "firefox")})
        assert result.changes_manifest

    def test_approve_uses_captured_url(self, classification, prior):
        result = approve(classification, prior, ApprovalSelector.all())
        entry = classification.get(ident("pageE", "chrome"))
        assert result.manifest.lookup(ident("pageE", "chrome")).image_url == entry.after_url

    def test_prior_not_mutated(self, classification, prior):
        before = prior.to_json()
        approve(classification, prior, ApprovalSelector.all())
        assert prior.to_json() == before

    def test_subset_leaves_unselected_entries_alone(self, classification, prior):
        result = approve(classification, prior, ApprovalSelector.of([ident("pageA", "chrome")]))

        manifest = result.manifest
        assert manifest.lookup(ident("pageA", "chrome")).image_hash == hash_image(PNG_X2)
        # Removal not approved: the golden survives
        assert manifest.lookup(ident("pageC", "firefox")) == prior.lookup(ident("pageC", "firefox"))
        # Addition not approved: nothing inserted
        assert ident("pageE", "chrome") not in manifest

    def test_selective_approval_of_changed_with_removed_pending(self):
        """Approving only pageA keeps pageC's golden: a removal is applied only
        when it is itself approved, never as a side effect of another approval."""
        prior = GoldenManifest({
            ident("pageA", "chrome"): golden_for(PNG_X),
            ident("pageC", "firefox"): golden_for(PNG_Z),
        })
        outcomes = {ident("pageA", "chrome"): captured(ident("pageA", "chrome"), PNG_X2)}
        classification = classify(prior, outcomes, [ident("pageA", "chrome")])

        result = approve(classification, prior, ApprovalSelector.parse(["pageA > chrome"]))

        assert result.manifest.lookup(ident("pageA", "chrome")).image_hash == hash_image(PNG_X2)
        assert result.manifest.lookup(ident("pageC", "firefox")) == prior.lookup(ident("pageC", "firefox"))
        assert result.removed == frozenset()

    def test_selecting_unchanged_or_skipped_is_noop(self, classification, prior):
        selector = ApprovalSelector.of([ident("pageB", "chrome"), ident("pageD", "chrome")])
        result = approve(classification, prior, selector)
        assert result.manifest == prior
        assert result.is_noop

    def test_unknown_identity_ignored(self, classification, prior):
        result = approve(classification, prior, ApprovalSelector.of([ident("nope", "chrome")]))
        assert result.is_noop

    def test_idempotent(self, classification, prior):
        once = approve(classification, prior, ApprovalSelector.all())
        twice = approve(classification, once.manifest, ApprovalSelector.all())
        assert twice.manifest == once.manifest
        assert twice.is_noop

    def test_split_selection_equals_combined(self, classification, prior):
        s1 = ApprovalSelector.of([ident("pageA", "chrome")])
        s2 = ApprovalSelector.of([ident("pageC", "firefox"), ident("pageE", "chrome")])
        combined = ApprovalSelector.of(s1.identities | s2.identities)

        stepwise = approve(classification, approve(classification, prior, s1).manifest, s2)
        at_once = approve(classification, prior, combined)

        assert stepwise.manifest == at_once.manifest
        assert at_once.manifest == approve(classification, prior, ApprovalSelector.all()).manifest

    def test_golden_changed_since_run_raises(self, classification, prior):
        newer = prior.with_updated({ident("pageA", "chrome"): golden_for(PNG_Y)})

        with pytest.raises(StaleApproval, match="pageA > chrome"):
            approve(classification, newer, ApprovalSelector.all())

    def test_added_entry_with_newer_golden_raises(self, classification, prior):
        newer = prior.with_updated({ident("pageE", "chrome"): golden_for(PNG_Z)})

        with pytest.raises(StaleApproval, match="pageE > chrome"):
            approve(classification, newer, ApprovalSelector.of([ident("pageE", "chrome")]))

    def test_removed_entry_with_newer_golden_raises(self, classification, prior):
        newer = prior.with_updated({ident("pageC", "firefox"): golden_for(PNG_Y)})

        with pytest.raises(StaleApproval):
            approve(classification, newer, ApprovalSelector.of([ident("pageC", "firefox")]))

    def test_unselected_stale_entry_does_not_block(self, classification, prior):
        newer = prior.with_updated({ident("pageA", "chrome"): golden_for(PNG_Y)})

        result = approve(classification, newer, ApprovalSelector.of([ident("pageE", "chrome")]))

        assert result.manifest.lookup(ident("pageA", "chrome")).image_hash == hash_image(PNG_Y)
        assert result.manifest.lookup(ident("pageE", "chrome")).image_hash == hash_image(PNG_Y)

    def test_added_entry_without_image_raises(self):
        entry = ClassificationEntry(identity=ident("pageA", "chrome"), category="added")
        classification = Classification(entries=(entry,))
        with pytest.raises(InvariantViolation, match="no captured image"):
            approve(classification, GoldenManifest(), ApprovalSelector.all())


class TestCommitApproval:

    @pytest.fixture
    def result(self, classification, prior):
        return approve(classification, prior, ApprovalSelector.all())

    @staticmethod
    def _image_source(image_hash):
        images = {hash_image(png): png for png in (PNG_X, PNG_X2, PNG_Y, PNG_Z)}
        return images.get(image_hash)

    def test_uploads_then_saves(self, result):
        calls = []
        asset_store = Mock()
        asset_store.upload.side_effect = lambda h, b: calls.append(("upload", h))
        manifest_store = Mock()
        manifest_store.save.side_effect = lambda m: calls.append(("save", None))

        assert commit_approval(result, self._image_source, asset_store, manifest_store) is True

        assert [c[0] for c in calls] == ["upload", "upload", "save"]
        uploaded = {c[1] for c in calls if c[0] == "upload"}
        assert uploaded == {hash_image(PNG_X2), hash_image(PNG_Y)}
        manifest_store.save.assert_called_once_with(result.manifest)

    def test_upload_failure_skips_save(self, result):
        asset_store = Mock()
        asset_store.upload.side_effect = [None, PersistenceFailure("disk full")]
        manifest_store = Mock()

        with pytest.raises(PersistenceFailure, match="1 of 2 approved images"):
            commit_approval(result, self._image_source, asset_store, manifest_store)

        assert asset_store.upload.call_count == 2
        manifest_store.save.assert_not_called()

    def test_missing_capture_skips_save(self, result):
        asset_store = Mock()
        manifest_store = Mock()

        with pytest.raises(PersistenceFailure, match="golden file not saved"):
            commit_approval(result, lambda _h: None, asset_store, manifest_store)

        asset_store.upload.assert_not_called()
        manifest_store.save.assert_not_called()

    def test_noop_commits_nothing(self, prior):
        result = approve(Classification(), prior, ApprovalSelector.all())
        asset_store = Mock()
        manifest_store = Mock()

        assert commit_approval(result, self._image_source, asset_store, manifest_store) is False
        asset_store.upload.assert_not_called()
        manifest_store.save.assert_not_called()

    def test_removal_only_saves_without_uploads(self, prior):
        classification = classify(prior, {}, [ident(p, "chrome") for p in ("pageA", "pageB", "pageD")])
        result = approve(classification, prior, ApprovalSelector.of([ident("pageC", "firefox")]))
        asset_store = Mock()
        manifest_store = Mock()

        assert commit_approval(result, self._image_source, asset_store, manifest_store) is True
        asset_store.upload.assert_not_called()
        manifest_store.save.assert_called_once()
