"""Classification data structures produced by the diff classifier."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.models.golden import ScreenshotIdentity

Category = Literal["skipped", "unchanged", "removed", "added", "changed"]

# Order used for counts, logs and report sections
CATEGORIES: tuple[str, ...] = ("skipped", "unchanged", "removed", "added", "changed")
APPROVABLE_CATEGORIES: frozenset[str] = frozenset({"changed", "added", "removed"})


class PixelDiffSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    changed_pixels: int = 0
    total_pixels: int = 0
    diff_ratio: float = 0.0
    size_mismatch: bool = False
    before_size: Optional[tuple[int, int]] = None
    after_size: Optional[tuple[int, int]] = None
    diff_image_path: Optional[str] = None
    error: Optional[str] = None  # set when the images could not be compared


class DiffDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    before_hash: str
    before_url: str
    after_hash: str
    after_url: str
    pixels: Optional[PixelDiffSummary] = None


class ClassificationEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    identity: ScreenshotIdentity
    category: Category
    diff: Optional[DiffDescriptor] = None  # only for "changed"
    # Populated where they exist so reports and approval need no manifest lookup
    before_hash: Optional[str] = None
    before_url: Optional[str] = None
    after_hash: Optional[str] = None
    after_url: Optional[str] = None
    skip_reason: Optional[str] = None


class RunMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    started_at: str = ""  # ISO timestamp
    ended_at: str = ""
    duration_seconds: float = 0.0
    counts: dict[str, int] = Field(default_factory=lambda: {c: 0 for c in CATEGORIES})
    total: int = 0

    @classmethod
    def from_entries(
        cls,
        entries: Iterable[ClassificationEntry],
        started_at: datetime | None = None,
        ended_at: datetime | None = None,
    ) -> "RunMetadata":
        counts = {c: 0 for c in CATEGORIES}
        for entry in entries:
            counts[entry.category] += 1
        duration = 0.0
        if started_at is not None and ended_at is not None:
            duration = round((ended_at - started_at).total_seconds(), 3)
        return cls(
            started_at=started_at.isoformat() if started_at else "",
            ended_at=ended_at.isoformat() if ended_at else "",
            duration_seconds=duration,
            counts=counts,
            total=sum(counts.values()),
        )

    @property
    def num_changes(self) -> int:
        return self.counts["changed"] + self.counts["added"] + self.counts["removed"]


class Classification(BaseModel):
    model_config = ConfigDict(frozen=True)

    entries: tuple[ClassificationEntry, ...] = ()
    metadata: RunMetadata = Field(default_factory=RunMetadata)

    def by_category(self, category: str) -> list[ClassificationEntry]:
        return [e for e in self.entries if e.category == category]

    def get(self, identity: ScreenshotIdentity) -> ClassificationEntry | None:
        for entry in self.entries:
            if entry.identity == identity:
                return entry
        return None

    def approvable(self) -> list[ClassificationEntry]:
        return [e for e in self.entries if e.category in APPROVABLE_CATEGORIES]
