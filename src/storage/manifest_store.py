"""Golden manifest store — loads and saves the golden JSON file."""

from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path

from src.errors import MalformedManifest, PersistenceFailure
from src.models.golden import GoldenManifest

logger = logging.getLogger(__name__)


class GoldenManifestStore:
    """Manages the golden JSON file that is checked into version control."""

    def __init__(self, golden_path: Path):
        self.golden_path = Path(golden_path)

    def load(self) -> GoldenManifest:
        """Load the golden manifest, or an empty one if the file does not exist yet.

        A corrupt file raises MalformedManifest instead of being reset, since
        silently starting over would mark every screenshot as added.
        """
        if not self.golden_path.exists():
            logger.info("No golden file at %s, starting with an empty manifest", self.golden_path)
            return GoldenManifest()
        try:
            text = self.golden_path.read_text(encoding="utf-8")
        except OSError as e:
            raise MalformedManifest(
                f"Could not read golden file: {e}", context={"path": self.golden_path}
            ) from e
        manifest = GoldenManifest.from_json(text)
        logger.debug("Loaded %d golden entries from %s", len(manifest), self.golden_path)
        return manifest

    def save(self, manifest: GoldenManifest) -> None:
        """Write the manifest atomically: a temp file in the same directory, then replace."""
        text = manifest.to_json(last_updated=time.strftime("%Y-%m-%dT%H:%M:%SZ"))
        tmp_name = None
        try:
            self.golden_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.golden_path.parent, prefix=".golden-", suffix=".json"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, self.golden_path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceFailure(
                f"Could not save golden file: {e}", context={"path": self.golden_path}
            ) from e
        logger.info("Saved %d golden entries to %s", len(manifest), self.golden_path)
