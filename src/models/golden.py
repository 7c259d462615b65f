"""Golden manifest data structures — the approved baseline for every screenshot."""

from __future__ import annotations

import json
from typing import Iterable, Iterator, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.errors import MalformedManifest

GOLDEN_FORMAT_VERSION = 1


class ScreenshotIdentity(BaseModel):
    """Identifies one expected screenshot across runs: a page seen through a user agent."""

    model_config = ConfigDict(frozen=True)

    page: str
    user_agent: str  # user agent alias, e.g. "desktop_chromium"

    @field_validator("page", "user_agent")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @classmethod
    def parse(cls, text: str) -> "ScreenshotIdentity":
        """Parse the ``"<page> > <user_agent>"`` form used in reports and the CLI."""
        page, sep, alias = text.rpartition(">")
        if not sep:
            raise ValueError(f"Expected '<page> > <user_agent>', got {text!r}")
        return cls(page=page, user_agent=alias)

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.page, self.user_agent)

    def __lt__(self, other: "ScreenshotIdentity") -> bool:
        return self.sort_key < other.sort_key

    def __str__(self) -> str:
        return f"{self.page} > {self.user_agent}"


class GoldenEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    image_hash: str  # SHA-256 hex digest of the PNG bytes
    image_url: str

    @field_validator("image_hash")
    @classmethod
    def _hash_present(cls, v: str) -> str:
        if not v:
            raise ValueError("image_hash must not be empty")
        return v.lower()


class GoldenFile(BaseModel):
    """On-disk layout of the golden manifest."""

    version: int = GOLDEN_FORMAT_VERSION
    last_updated: str = ""
    screenshots: dict[str, dict[str, GoldenEntry]] = Field(default_factory=dict)
    # page -> user agent alias -> entry


def _reject_duplicate_keys(pairs: list[tuple[str, object]]) -> dict:
    result: dict = {}
    for key, value in pairs:
        if key in result:
            raise MalformedManifest(f"Duplicate key {key!r} in golden file")
        result[key] = value
    return result


class GoldenManifest:
    """Immutable mapping of ScreenshotIdentity -> GoldenEntry.

    Update operations return a new manifest and leave the receiver untouched.
    Iteration is always in identity order so serialization is reproducible.
    """

    __slots__ = ("_entries",)

    def __init__(self, entries: Mapping[ScreenshotIdentity, GoldenEntry] | None = None):
        self._entries: dict[ScreenshotIdentity, GoldenEntry] = dict(entries or {})

    @classmethod
    def from_entries(
        cls, pairs: Iterable[tuple[ScreenshotIdentity, GoldenEntry]]
    ) -> "GoldenManifest":
        entries: dict[ScreenshotIdentity, GoldenEntry] = {}
        for identity, entry in pairs:
            if identity in entries:
                raise MalformedManifest(
                    f"Duplicate golden entry for {identity}",
                    context={"page": identity.page, "user_agent": identity.user_agent},
                )
            entries[identity] = entry
        return cls(entries)

    @classmethod
    def from_golden_file(cls, golden: GoldenFile) -> "GoldenManifest":
        if golden.version != GOLDEN_FORMAT_VERSION:
            raise MalformedManifest(
                f"Unsupported golden file version {golden.version}",
                context={"expected": GOLDEN_FORMAT_VERSION},
            )
        return cls.from_entries(
            (ScreenshotIdentity(page=page, user_agent=alias), entry)
            for page, by_alias in golden.screenshots.items()
            for alias, entry in by_alias.items()
        )

    @classmethod
    def from_json(cls, text: str) -> "GoldenManifest":
        """Parse a golden file, rejecting duplicate keys the JSON parser would hide."""
        try:
            data = json.loads(text, object_pairs_hook=_reject_duplicate_keys)
            golden = GoldenFile.model_validate(data)
        except json.JSONDecodeError as e:
            raise MalformedManifest(f"Golden file is not valid JSON: {e}") from e
        except ValidationError as e:
            raise MalformedManifest(f"Golden file does not match the expected schema: {e}") from e
        return cls.from_golden_file(golden)

    def to_golden_file(self, last_updated: str = "") -> GoldenFile:
        screenshots: dict[str, dict[str, GoldenEntry]] = {}
        for identity in self:
            screenshots.setdefault(identity.page, {})[identity.user_agent] = self._entries[identity]
        return GoldenFile(last_updated=last_updated, screenshots=screenshots)

    def to_json(self, last_updated: str = "") -> str:
        return json.dumps(
            self.to_golden_file(last_updated).model_dump(), indent=2, sort_keys=True
        ) + "\n"

    def lookup(self, identity: ScreenshotIdentity) -> GoldenEntry | None:
        return self._entries.get(identity)

    def with_updated(
        self, entries: Mapping[ScreenshotIdentity, GoldenEntry] | Iterable[tuple[ScreenshotIdentity, GoldenEntry]]
    ) -> "GoldenManifest":
        """Return a copy with the given identities replaced or inserted."""
        pairs = entries.items() if isinstance(entries, Mapping) else entries
        updated = dict(self._entries)
        for identity, entry in pairs:
            updated[identity] = entry
        return GoldenManifest(updated)

    def with_removed(self, identities: Iterable[ScreenshotIdentity]) -> "GoldenManifest":
        """Return a copy without the given identities. Absent identities are ignored."""
        drop = set(identities)
        return GoldenManifest(
            {identity: entry for identity, entry in self._entries.items() if identity not in drop}
        )

    def identities(self) -> list[ScreenshotIdentity]:
        return sorted(self._entries)

    def items(self) -> list[tuple[ScreenshotIdentity, GoldenEntry]]:
        return [(identity, self._entries[identity]) for identity in self]

    def pages(self) -> list[str]:
        return sorted({identity.page for identity in self._entries})

    def user_agents(self) -> list[str]:
        return sorted({identity.user_agent for identity in self._entries})

    def __iter__(self) -> Iterator[ScreenshotIdentity]:
        return iter(sorted(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        return identity in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GoldenManifest):
            return NotImplemented
        return self._entries == other._entries

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"GoldenManifest({len(self._entries)} entries)"
