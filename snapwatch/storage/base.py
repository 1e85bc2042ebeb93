"""Storage collaborator interfaces."""

from __future__ import annotations

from typing import Optional, Protocol

from snapwatch.models.baseline import BaselineRecord
from snapwatch.models.raster import Raster


class StorageError(Exception):
    """A baseline record or image could not be read or written."""


class BaselineStore(Protocol):
    def get(self, target_id: str, viewport_key: str) -> Optional[BaselineRecord]: ...

    def put(self, target_id: str, viewport_key: str, record: BaselineRecord) -> None: ...

    def compare_and_set(
        self,
        target_id: str,
        viewport_key: str,
        expected: Optional[BaselineRecord],
        new: BaselineRecord,
    ) -> bool: ...


class ImageStore(Protocol):
    def store(self, raster: Raster, folder: str) -> str: ...

    def fetch(self, ref: str) -> Raster: ...

    def discard(self, ref: str) -> None: ...
