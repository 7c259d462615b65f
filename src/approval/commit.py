"""Approval commit — upload approved images, then save the golden file."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from src.errors import PersistenceFailure
from src.models.golden import GoldenManifest, ScreenshotIdentity

from .engine import ApprovalResult

logger = logging.getLogger(__name__)

# Returns the PNG bytes of a captured image by content hash, or None if unknown
ImageSource = Callable[[str], Optional[bytes]]


class AssetStore(Protocol):
    def upload(self, image_hash: str, image_bytes: bytes) -> str: ...


class ManifestStore(Protocol):
    def save(self, manifest: GoldenManifest) -> None: ...


def commit_approval(
    result: ApprovalResult,
    image_source: ImageSource,
    asset_store: AssetStore,
    manifest_store: ManifestStore,
) -> bool:
    """Persist an approval as one batch. Returns False if there was nothing to commit.

    Every approved image must be uploaded before the golden file is saved; if
    any upload fails the golden file is left as it was and PersistenceFailure
    is raised so the caller retries the whole batch.
    """
    if result.is_noop:
        logger.info("Approval does not change the golden file, nothing to commit")
        return False

    failures: list[tuple[ScreenshotIdentity, str]] = []
    for identity, entry in sorted(result.updated.items()):
        image_bytes = image_source(entry.image_hash)
        if image_bytes is None:
            failures.append((identity, "captured image not found"))
            continue
        try:
            asset_store.upload(entry.image_hash, image_bytes)
        except PersistenceFailure as e:
            failures.append((identity, e.message))
            continue
        logger.debug("Uploaded %s (%s)", identity, entry.image_hash[:12])

    if failures:
        for identity, reason in failures:
            logger.error("Upload failed for %s: %s", identity, reason)
        raise PersistenceFailure(
            f"{len(failures)} of {len(result.updated)} approved images could not be uploaded; "
            "golden file not saved",
            context={"first_failure": str(failures[0][0])},
        )

    manifest_store.save(result.manifest)
    logger.info(
        "Committed approval: %d updated, %d removed", len(result.updated), len(result.removed)
    )
    return True
