"""Capture outcomes — what happened when a screenshot was attempted in this run."""

from __future__ import annotations

import hashlib
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

from src.models.golden import ScreenshotIdentity


def hash_image(image_bytes: bytes) -> str:
    """SHA-256 hex digest used as the content hash of a screenshot."""
    return hashlib.sha256(image_bytes).hexdigest()


class Captured(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["captured"] = "captured"
    identity: ScreenshotIdentity
    image_bytes: bytes
    image_hash: str
    image_url: str

    @classmethod
    def from_bytes(
        cls, identity: ScreenshotIdentity, image_bytes: bytes, image_url: str = ""
    ) -> "Captured":
        return cls(
            identity=identity,
            image_bytes=image_bytes,
            image_hash=hash_image(image_bytes),
            image_url=image_url,
        )


class Failed(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["failed"] = "failed"
    identity: ScreenshotIdentity
    reason: str  # e.g. "timeout", "browser unavailable: ..."


class NotAttempted(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Literal["not_attempted"] = "not_attempted"
    identity: ScreenshotIdentity
    reason: str = ""  # e.g. "excluded by --page filter"


CaptureOutcome = Union[Captured, Failed, NotAttempted]
