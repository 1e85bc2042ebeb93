"""Raster builders and collaborator fakes shared across tests."""

from typing import Optional

import numpy as np

from snapwatch.capture.capturer import CaptureResult
from snapwatch.models.config import TargetConfig, ViewportConfig
from snapwatch.models.raster import Raster
from snapwatch.storage.base import StorageError
from snapwatch.storage.image_store import LocalImageStore


def make_raster(width: int = 20, height: int = 10, color=(255, 255, 255, 255)) -> Raster:
    """Solid-colour raster."""
    return Raster.blank(width, height, color)


def with_black_pixels(raster: Raster, count: int) -> Raster:
    """Copy of ``raster`` with the first ``count`` pixels (row-major) painted black."""
    arr = raster.to_array().copy()
    flat = arr.reshape(-1, 4)
    flat[:count] = (0, 0, 0, 255)
    return Raster.from_array(arr)


def checkerboard(width: int, height: int) -> Raster:
    arr = np.zeros((height, width, 4), dtype=np.uint8)
    arr[..., 3] = 255
    arr[::2, ::2, :3] = 255
    arr[1::2, 1::2, :3] = 255
    return Raster.from_array(arr)


class FailingImageStore:
    """Image store whose writes and/or reads always fail."""

    def __init__(self, inner: LocalImageStore, fail_store: bool = True, fail_fetch: bool = False):
        self.inner = inner
        self.fail_store = fail_store
        self.fail_fetch = fail_fetch
        self.store_calls = 0

    def store(self, raster: Raster, folder: str) -> str:
        self.store_calls += 1
        if self.fail_store:
            raise StorageError("upload rejected")
        return self.inner.store(raster, folder)

    def fetch(self, ref: str) -> Raster:
        if self.fail_fetch:
            raise StorageError("image store unreachable")
        return self.inner.fetch(ref)

    def discard(self, ref: str) -> None:
        self.inner.discard(ref)


class FakeCapturer:
    """Returns pre-programmed captures keyed by (url, viewport name).

    Values may be a Raster, a CaptureResult, an exception to raise, or None
    for a navigation failure.
    """

    def __init__(self, images: Optional[dict] = None, default: Optional[Raster] = None):
        self.images = images or {}
        self.default = default
        self.calls: list[tuple[str, str]] = []
        self.entered = False
        self.exited = False

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, *exc):
        self.exited = True

    async def capture(self, target: TargetConfig, viewport: ViewportConfig) -> CaptureResult:
        self.calls.append((target.url, viewport.name))
        result = self.images.get((target.url, viewport.name), self.default)
        if isinstance(result, CaptureResult):
            return result
        if isinstance(result, Exception):
            raise result
        if result is None:
            return CaptureResult(image=None, diagnostics=["Navigation failed: net::ERR_NAME_NOT_RESOLVED"])
        return CaptureResult(image=result)


class FakeNotifier:
    def __init__(self):
        self.batches = None
        self.notices = None

    def notify(self, batches) -> int:
        self.batches = dict(batches)
        return len(batches)

    def notify_baselines(self, notices) -> int:
        self.notices = dict(notices)
        return len(notices)
