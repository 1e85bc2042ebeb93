"""In-memory RGBA raster exchanged between capture, storage and the comparator."""

from __future__ import annotations

import io
from dataclasses import dataclass

import numpy as np
from PIL import Image


@dataclass(frozen=True)
class Raster:
    width: int
    height: int
    data: bytes  # row-major RGBA, 4 bytes per pixel

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Invalid raster size {self.width}x{self.height}")
        expected = self.width * self.height * 4
        if len(self.data) != expected:
            raise ValueError(
                f"Raster data has {len(self.data)} bytes, expected {expected} "
                f"for {self.width}x{self.height} RGBA"
            )

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @classmethod
    def from_image(cls, image: Image.Image) -> "Raster":
        rgba = image.convert("RGBA")
        return cls(width=rgba.width, height=rgba.height, data=rgba.tobytes())

    @classmethod
    def from_png(cls, payload: bytes) -> "Raster":
        with Image.open(io.BytesIO(payload)) as img:
            return cls.from_image(img)

    @classmethod
    def from_array(cls, array: np.ndarray) -> "Raster":
        """Build a raster from an (height, width, 4) uint8 array."""
        if array.ndim != 3 or array.shape[2] != 4:
            raise ValueError(f"Expected an (H, W, 4) array, got shape {array.shape}")
        height, width = array.shape[:2]
        return cls(width=width, height=height, data=np.ascontiguousarray(array, dtype=np.uint8).tobytes())

    @classmethod
    def blank(cls, width: int, height: int, color: tuple[int, int, int, int] = (255, 255, 255, 255)) -> "Raster":
        return cls(width=width, height=height, data=bytes(color) * (width * height))

    def to_array(self) -> np.ndarray:
        return np.frombuffer(self.data, dtype=np.uint8).reshape(self.height, self.width, 4)

    def to_image(self) -> Image.Image:
        return Image.frombytes("RGBA", (self.width, self.height), self.data)

    def to_png(self) -> bytes:
        buf = io.BytesIO()
        self.to_image().save(buf, format="PNG")
        return buf.getvalue()
