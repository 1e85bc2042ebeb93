"""Image store — content-addressed PNG files under a local images directory."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from snapwatch.models.raster import Raster

from .base import StorageError

logger = logging.getLogger(__name__)


class LocalImageStore:
    """Stores rasters as PNGs; references are paths relative to ``root``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def resolve(self, ref: str) -> Path:
        """Return the absolute path for a reference, refusing paths outside the store."""
        root = self.root.resolve()
        path = (root / ref).resolve()
        if root not in path.parents:
            raise StorageError(f"Image reference escapes the store: {ref}")
        return path

    def store(self, raster: Raster, folder: str) -> str:
        """Write a raster as PNG and return its reference."""
        payload = raster.to_png()
        digest = hashlib.sha256(payload).hexdigest()[:16]
        ref = f"{folder.strip('/')}/{digest}.png"
        dest = self.resolve(ref)
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(payload)
        except OSError as e:
            raise StorageError(f"Failed to store image {ref}: {e}") from e
        logger.debug("Stored %dx%d image at %s", raster.width, raster.height, ref)
        return ref

    def fetch(self, ref: str) -> Raster:
        """Load a previously stored image."""
        path = self.resolve(ref)
        try:
            payload = path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to fetch image {ref}: {e}") from e
        try:
            return Raster.from_png(payload)
        except Exception as e:
            raise StorageError(f"Stored image {ref} is not a readable PNG: {e}") from e

    def discard(self, ref: str) -> None:
        """Remove a stored image; a missing file is not an error."""
        path = self.resolve(ref)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to discard image {ref}: {e}") from e
        logger.debug("Discarded image %s", ref)
