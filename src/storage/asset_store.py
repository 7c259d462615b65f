"""Content-addressed image store for golden screenshots."""

from __future__ import annotations

import logging
from pathlib import Path

from src.errors import PersistenceFailure
from src.models.capture import hash_image

logger = logging.getLogger(__name__)


class LocalAssetStore:
    """Stores PNGs under ``<assets_dir>/images/<hash[:2]>/<hash>.png``.

    The public URL of an image depends only on its hash, so it is known as
    soon as a screenshot is captured and stays valid after it is approved.
    """

    def __init__(self, assets_dir: Path, base_url: str = ""):
        self.assets_dir = Path(assets_dir)
        self.base_url = base_url.rstrip("/")

    def _relative_path(self, image_hash: str) -> str:
        return f"images/{image_hash[:2]}/{image_hash}.png"

    def path_for(self, image_hash: str) -> Path:
        return self.assets_dir / self._relative_path(image_hash)

    def url_for(self, image_hash: str) -> str:
        if self.base_url:
            return f"{self.base_url}/{self._relative_path(image_hash)}"
        return self.path_for(image_hash).resolve().as_uri()

    def exists(self, image_hash: str) -> bool:
        return self.path_for(image_hash).exists()

    def upload(self, image_hash: str, image_bytes: bytes) -> str:
        """Store an image under its hash and return its URL. Re-uploading is a no-op."""
        if hash_image(image_bytes) != image_hash:
            raise PersistenceFailure(
                "Image bytes do not match their content hash",
                context={"image_hash": image_hash},
            )
        dest = self.path_for(image_hash)
        if not dest.exists():
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                tmp = dest.with_suffix(".png.part")
                tmp.write_bytes(image_bytes)
                tmp.replace(dest)
            except OSError as e:
                raise PersistenceFailure(
                    f"Could not store image: {e}", context={"image_hash": image_hash}
                ) from e
            logger.debug("Stored %s", dest)
        return self.url_for(image_hash)

    def read(self, image_hash: str) -> bytes | None:
        path = self.path_for(image_hash)
        if not path.exists():
            return None
        return path.read_bytes()
