"""Approval engine — promotes selected captures to become the new goldens."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from src.errors import InvariantViolation, StaleApproval
from src.models.classification import APPROVABLE_CATEGORIES, Classification, ClassificationEntry
from src.models.golden import GoldenEntry, GoldenManifest, ScreenshotIdentity

logger = logging.getLogger(__name__)

ALL_TOKEN = "all"


@dataclass(frozen=True)
class ApprovalSelector:
    """Either every approvable entry, or an explicit set of identities."""

    approve_all: bool = False
    identities: frozenset[ScreenshotIdentity] = frozenset()

    @classmethod
    def all(cls) -> "ApprovalSelector":
        return cls(approve_all=True)

    @classmethod
    def of(cls, identities: Iterable[ScreenshotIdentity]) -> "ApprovalSelector":
        return cls(identities=frozenset(identities))

    @classmethod
    def parse(cls, tokens: Iterable[str]) -> "ApprovalSelector":
        """Build a selector from CLI input: ``all`` or ``"<page> > <user_agent>"`` tokens."""
        tokens = [t.strip() for t in tokens if t.strip()]
        if any(t.lower() == ALL_TOKEN for t in tokens):
            return cls.all()
        return cls.of(ScreenshotIdentity.parse(t) for t in tokens)

    def selects(self, identity: ScreenshotIdentity) -> bool:
        return self.approve_all or identity in self.identities


@dataclass(frozen=True)
class ApprovalResult:
    manifest: GoldenManifest
    updated: dict[ScreenshotIdentity, GoldenEntry] = field(default_factory=dict)
    removed: frozenset[ScreenshotIdentity] = frozenset()
    changes_manifest: bool = False

    @property
    def is_noop(self) -> bool:
        return not self.changes_manifest


def _is_stale(entry: ClassificationEntry, prior: GoldenManifest) -> bool:
    """True when the current golden is neither what the run compared against
    nor what approving the entry would produce."""
    current = prior.lookup(entry.identity)
    current_hash = current.image_hash if current else None
    target_hash = None if entry.category == "removed" else entry.after_hash
    return current_hash not in (entry.before_hash, target_hash)


def approve(
    classification: Classification,
    prior: GoldenManifest,
    selector: ApprovalSelector,
) -> ApprovalResult:
    """Apply the selected changed/added/removed entries to the prior manifest.

    Unchanged and skipped entries are never touched, even when selected.
    Entries that are not selected keep exactly their prior golden. Applying
    the same selection again yields the same manifest. Raises
    StaleApproval when a selected golden has moved on since the run was
    classified, so an old report cannot revert newer approvals.
    """
    updated: dict[ScreenshotIdentity, GoldenEntry] = {}
    removed: set[ScreenshotIdentity] = set()
    stale: list[ScreenshotIdentity] = []

    for entry in classification.entries:
        if entry.category not in APPROVABLE_CATEGORIES or not selector.selects(entry.identity):
            continue
        if _is_stale(entry, prior):
            stale.append(entry.identity)
            continue
        if entry.category == "removed":
            removed.add(entry.identity)
            continue
        if not entry.after_hash or entry.after_url is None:
            raise InvariantViolation(
                f"{entry.category.capitalize()} entry {entry.identity} has no captured image"
            )
        updated[entry.identity] = GoldenEntry(image_hash=entry.after_hash, image_url=entry.after_url)

    if stale:
        raise StaleApproval(
            f"Golden file changed since this run for {len(stale)} screenshot(s): "
            + ", ".join(str(i) for i in stale),
        )

    if not selector.approve_all:
        known = {e.identity for e in classification.entries}
        for identity in sorted(selector.identities - known):
            logger.warning("Ignoring approval of %s: not part of this run", identity)

    manifest = prior.with_updated(updated).with_removed(removed)
    logger.info(
        "Approved %d updated and %d removed screenshots (%d entries in golden file)",
        len(updated), len(removed), len(manifest),
    )
    return ApprovalResult(
        manifest=manifest,
        updated=updated,
        removed=frozenset(removed),
        changes_manifest=manifest != prior,
    )
