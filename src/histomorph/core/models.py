"""Data models for the histomorph core module."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping

import numpy as np

# Magnitude below which a stain vector is treated as all-zero.
DEGENERATE_NORM = 1e-8


@dataclass(frozen=True, eq=False)
class Image:
    """An immutable interleaved 8-bit color image.

    Attributes:
        width: Image width in pixels.
        height: Image height in pixels.
        components: Samples per pixel (3 = RGB, 4 = RGBA).
        pixels: Read-only uint8 array of shape (height, width, components).
    """

    width: int
    height: int
    components: int
    pixels: np.ndarray = field(repr=False)

    @classmethod
    def from_buffer(
        cls, width: int, height: int, data: bytes, components: int = 3,
    ) -> Image:
        """Build an Image from a row-major, unpadded byte buffer.

        Raises:
            ValueError: If the buffer length does not match the dimensions.
        """
        expected = width * height * components
        if len(data) != expected:
            raise ValueError(
                f"Buffer length {len(data)} does not match "
                f"{width}x{height}x{components} = {expected}"
            )
        pixels = np.frombuffer(bytes(data), dtype=np.uint8).reshape(
            (height, width, components)
        )
        return cls(width=width, height=height, components=components, pixels=pixels)

    def __post_init__(self) -> None:
        if self.components not in (3, 4):
            raise ValueError(f"components must be 3 or 4, got {self.components}")
        if self.pixels.shape != (self.height, self.width, self.components):
            raise ValueError(
                f"pixel array shape {self.pixels.shape} does not match "
                f"({self.height}, {self.width}, {self.components})"
            )
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"pixel array must be uint8, got {self.pixels.dtype}")
        if self.pixels.flags.writeable:
            pixels = self.pixels.copy()
            pixels.setflags(write=False)
            object.__setattr__(self, "pixels", pixels)

    @property
    def rgb(self) -> np.ndarray:
        """The three color components, without alpha."""
        return self.pixels[..., :3]


@dataclass(frozen=True)
class StainVector:
    """Relative absorbance of one stain across the R, G and B components."""

    name: str
    r: float
    g: float
    b: float

    @property
    def norm(self) -> float:
        return math.sqrt(self.r ** 2 + self.g ** 2 + self.b ** 2)

    @property
    def is_degenerate(self) -> bool:
        return not math.isfinite(self.norm) or self.norm < DEGENERATE_NORM

    def as_array(self) -> np.ndarray:
        return np.array([self.r, self.g, self.b], dtype=np.float64)


@dataclass(frozen=True, eq=False)
class Channel:
    """A per-stain intensity map with every value in [0, 1].

    Attributes:
        name: Name of the stain vector that produced this channel.
        data: Read-only float64 array of shape (height, width).
    """

    name: str
    data: np.ndarray = field(repr=False)

    def __post_init__(self) -> None:
        data = np.array(self.data, dtype=np.float64, copy=True)
        if data.ndim != 2:
            raise ValueError(f"channel data must be 2D, got shape {data.shape}")
        if data.size and not (
            np.all(np.isfinite(data)) and data.min() >= 0.0 and data.max() <= 1.0
        ):
            raise ValueError(f"channel {self.name!r} has values outside [0, 1]")
        data.setflags(write=False)
        object.__setattr__(self, "data", data)

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])


@dataclass(frozen=True, eq=False)
class Region:
    """A connected set of above-threshold pixels found by segmentation.

    Attributes:
        index: Position in raster order of the region's seed pixel.
        pixels: int array of shape (N, 2) holding (y, x) coordinates.
        area: Pixel count.
        centroid_x: Mean x coordinate.
        centroid_y: Mean y coordinate.
        bounding_radius: Largest distance from the centroid to a member pixel.
        bbox: (x, y, w, h) bounding box in channel coordinates.
        channel: The channel the region was segmented from.
    """

    index: int
    pixels: np.ndarray = field(repr=False)
    area: int
    centroid_x: float
    centroid_y: float
    bounding_radius: float
    bbox: tuple[int, int, int, int]
    channel: Channel = field(repr=False)

    @classmethod
    def from_pixels(cls, index: int, pixels: np.ndarray, channel: Channel) -> Region:
        """Derive the summary fields of a region from its (y, x) coordinates."""
        if len(pixels) == 0:
            raise ValueError("a region must contain at least one pixel")
        pixels = np.array(pixels, dtype=np.int64).reshape(-1, 2)
        pixels.setflags(write=False)
        ys = pixels[:, 0].astype(np.float64)
        xs = pixels[:, 1].astype(np.float64)
        cy = float(ys.mean())
        cx = float(xs.mean())
        radius = float(np.sqrt((ys - cy) ** 2 + (xs - cx) ** 2).max())
        y0, x0 = (int(v) for v in pixels.min(axis=0))
        y1, x1 = (int(v) for v in pixels.max(axis=0))
        return cls(
            index=index,
            pixels=pixels,
            area=int(len(pixels)),
            centroid_x=cx,
            centroid_y=cy,
            bounding_radius=radius,
            bbox=(x0, y0, x1 - x0 + 1, y1 - y0 + 1),
            channel=channel,
        )

    def mask(self) -> tuple[np.ndarray, tuple[int, int]]:
        """Boolean mask cropped to the bounding box, and its (y, x) origin."""
        x0, y0, w, h = self.bbox
        crop = np.zeros((h, w), dtype=bool)
        crop[self.pixels[:, 0] - y0, self.pixels[:, 1] - x0] = True
        return crop, (y0, x0)

    def full_mask(self) -> np.ndarray:
        """Boolean mask with the full shape of the source channel."""
        mask = np.zeros(self.channel.data.shape, dtype=bool)
        mask[self.pixels[:, 0], self.pixels[:, 1]] = True
        return mask


@dataclass(frozen=True)
class FeatureVector:
    """Named scalar descriptors for one region, sampling window, or image.

    A value of ``None`` marks a descriptor as undefined (insufficient sample);
    scoring treats it as absent, never as zero.
    """

    source: str
    values: Mapping[str, float | None]

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def __getitem__(self, name: str) -> float | None:
        return self.values[name]

    def __contains__(self, name: object) -> bool:
        return name in self.values

    def __iter__(self) -> Iterator[str]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def get(self, name: str, default: float | None = None) -> float | None:
        return self.values.get(name, default)

    def is_defined(self, name: str) -> bool:
        return self.values.get(name) is not None

    def defined(self) -> dict[str, float]:
        """Only the defined (non-None) descriptors."""
        return {k: v for k, v in self.values.items() if v is not None}

    def to_dict(self) -> dict[str, float | None]:
        return dict(self.values)
