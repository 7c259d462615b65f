"""Diff classifier — assigns every screenshot of a run to exactly one category.

The decision table, evaluated first-match-wins for every identity in
``targets ∪ prior``:

    not in targets                    -> removed
    not attempted / failed / missing  -> skipped
    not in prior, captured            -> added
    in prior, captured, same hash     -> unchanged
    in prior, captured, other hash    -> changed

Identities are unique keys and are visited in sorted order, so the result
depends only on the inputs and never on the order captures arrived in.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Mapping

from src.errors import InvariantViolation
from src.models.capture import Captured, CaptureOutcome, Failed, NotAttempted, hash_image
from src.models.classification import (
    Classification,
    ClassificationEntry,
    DiffDescriptor,
    PixelDiffSummary,
    RunMetadata,
)
from src.models.golden import GoldenEntry, GoldenManifest, ScreenshotIdentity

logger = logging.getLogger(__name__)

ImageDiffer = Callable[[GoldenEntry, Captured], PixelDiffSummary]


def _target_set(targets: Iterable[ScreenshotIdentity]) -> frozenset[ScreenshotIdentity]:
    seen: set[ScreenshotIdentity] = set()
    for identity in targets:
        if identity in seen:
            raise InvariantViolation(
                f"Target set lists {identity} more than once",
                context={"page": identity.page, "user_agent": identity.user_agent},
            )
        seen.add(identity)
    return frozenset(seen)


def _check_captures(captured: Mapping[ScreenshotIdentity, CaptureOutcome]) -> None:
    for identity, outcome in captured.items():
        if outcome.identity != identity:
            raise InvariantViolation(
                f"Capture keyed as {identity} carries identity {outcome.identity}"
            )
        if isinstance(outcome, Captured) and hash_image(outcome.image_bytes) != outcome.image_hash:
            raise InvariantViolation(
                f"Content hash of {identity} does not match its image bytes",
                context={"image_hash": outcome.image_hash},
            )


def classify_one(
    identity: ScreenshotIdentity,
    prior: GoldenEntry | None,
    in_target: bool,
    outcome: CaptureOutcome | None,
    differ: ImageDiffer | None = None,
) -> ClassificationEntry:
    """Apply the decision table to a single identity."""
    before = {"before_hash": prior.image_hash, "before_url": prior.image_url} if prior else {}

    if not in_target:
        return ClassificationEntry(identity=identity, category="removed", **before)

    if outcome is None or isinstance(outcome, (NotAttempted, Failed)):
        reason = outcome.reason if outcome is not None else "no capture result"
        return ClassificationEntry(identity=identity, category="skipped", skip_reason=reason, **before)

    after = {"after_hash": outcome.image_hash, "after_url": outcome.image_url}

    if prior is None:
        return ClassificationEntry(identity=identity, category="added", **after)

    if outcome.image_hash == prior.image_hash:
        return ClassificationEntry(identity=identity, category="unchanged", **before, **after)

    pixels = differ(prior, outcome) if differ else None
    diff = DiffDescriptor(
        before_hash=prior.image_hash,
        before_url=prior.image_url,
        after_hash=outcome.image_hash,
        after_url=outcome.image_url,
        pixels=pixels,
    )
    return ClassificationEntry(identity=identity, category="changed", diff=diff, **before, **after)


def classify(
    prior: GoldenManifest,
    captured: Mapping[ScreenshotIdentity, CaptureOutcome],
    targets: Iterable[ScreenshotIdentity],
    differ: ImageDiffer | None = None,
    started_at: datetime | None = None,
    ended_at: datetime | None = None,
) -> Classification:
    """Classify a run against the prior golden manifest.

    Raises InvariantViolation for structurally inconsistent input; per-identity
    capture failures never raise and show up as ``skipped`` entries.
    """
    target_set = _target_set(targets)
    _check_captures(captured)

    universe = sorted(target_set | set(prior.identities()))
    # Captures outside targets ∪ prior have nothing to be compared against
    for identity in sorted(set(captured) - set(universe)):
        logger.debug("Ignoring capture for %s: neither targeted nor in the golden file", identity)

    entries = []
    for identity in universe:
        entry = classify_one(
            identity,
            prior.lookup(identity),
            identity in target_set,
            captured.get(identity),
            differ,
        )
        logger.debug("%s: %s", identity, entry.category)
        entries.append(entry)

    metadata = RunMetadata.from_entries(entries, started_at=started_at, ended_at=ended_at)
    logger.info(
        "Classified %d screenshots: %s",
        metadata.total,
        ", ".join(f"{n} {c}" for c, n in metadata.counts.items()),
    )
    return Classification(entries=tuple(entries), metadata=metadata)
