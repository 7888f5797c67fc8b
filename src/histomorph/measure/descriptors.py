"""Built-in morphometric descriptors and the descriptor registry."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Callable

import numpy as np
from scipy import ndimage
from skimage.measure import regionprops

from histomorph.core.config import FeatureParams


@dataclass(frozen=True, eq=False)
class Sample:
    """The pixels one feature vector describes, cropped from a channel.

    Attributes:
        intensities: Channel crop (2D float array).
        mask: Pixels described by the sample (the region, or the window disk).
        shape_mask: Pixels whose outline the shape descriptors measure. For a
            region this equals ``mask``; for a window it is the above-threshold
            part of the disk.
        center: (y, x) origin of the radial rays, in crop coordinates.
        params: Descriptor parameters.
    """

    intensities: np.ndarray = field(repr=False)
    mask: np.ndarray = field(repr=False)
    shape_mask: np.ndarray = field(repr=False)
    center: tuple[float, float]
    params: FeatureParams

    @property
    def shape_pixels(self) -> int:
        return int(np.count_nonzero(self.shape_mask))

    @property
    def shape_defined(self) -> bool:
        """Whether there are enough pixels for a meaningful shape measurement."""
        return self.shape_pixels >= self.params.min_shape_pixels


# Descriptor signature: (sample) -> float, or None when undefined
Descriptor = Callable[[Sample], "float | None"]

_CROSS = ndimage.generate_binary_structure(2, 1)


def boundary_mask(mask: np.ndarray) -> np.ndarray:
    """Member pixels with at least one 4-connected neighbour outside the mask.

    Pixels on the array border count as boundary pixels.
    """
    eroded = ndimage.binary_erosion(mask, structure=_CROSS, border_value=0)
    return mask & ~eroded


def radial_distances(
    shape_mask: np.ndarray, center: tuple[float, float], step_degrees: float,
) -> np.ndarray:
    """Distance from ``center`` to the first non-member pixel along each ray.

    Rays start at angle 0 and are spaced ``step_degrees`` apart; each is
    sampled at integer radii from 1 outward, leaving the array counts as
    leaving the mask.
    """
    cy, cx = center
    h, w = shape_mask.shape
    max_r = int(math.ceil(math.hypot(h, w))) + 1
    angles = np.deg2rad(np.arange(0.0, 360.0, step_degrees))
    radii = np.arange(1, max_r + 1)
    ys = np.rint(cy + np.outer(np.sin(angles), radii)).astype(np.int64)
    xs = np.rint(cx + np.outer(np.cos(angles), radii)).astype(np.int64)
    inside = (ys >= 0) & (ys < h) & (xs >= 0) & (xs < w)
    member = np.zeros(inside.shape, dtype=bool)
    member[inside] = shape_mask[ys[inside], xs[inside]]
    first_out = np.argmax(~member, axis=1)
    return radii[first_out].astype(np.float64)


def coefficient_of_variation(values: np.ndarray) -> float:
    """std / mean, or 0.0 when the mean is 0."""
    mean = float(np.mean(values))
    if mean == 0:
        return 0.0
    return float(np.std(values)) / mean


def area(sample: Sample) -> float:
    """Pixel count of the sample."""
    return float(np.count_nonzero(sample.mask))


def perimeter(sample: Sample) -> float | None:
    """Number of boundary pixels of the shape mask."""
    if not sample.shape_defined:
        return None
    return float(np.count_nonzero(boundary_mask(sample.shape_mask)))


def roundness(sample: Sample) -> float | None:
    """4*pi*area / perimeter^2, clamped to [0, 1]; 1.0 for a filled disk."""
    p = perimeter(sample)
    if not p:
        return None
    value = 4.0 * math.pi * sample.shape_pixels / (p ** 2)
    return float(min(max(value, 0.0), 1.0))


def radial_irregularity(sample: Sample) -> float | None:
    """Coefficient of variation of the radial contour distances."""
    if not sample.shape_defined:
        return None
    distances = radial_distances(
        sample.shape_mask, sample.center, sample.params.ray_step_degrees,
    )
    return coefficient_of_variation(distances)


def convex_complexity(sample: Sample) -> float | None:
    """1 - area / convex hull area; 0 for convex shapes, higher when notched."""
    if not sample.shape_defined:
        return None
    props = regionprops(sample.shape_mask.astype(np.uint8))
    return float(min(max(1.0 - float(props[0].solidity), 0.0), 1.0))


def mean_intensity(sample: Sample) -> float:
    """Average channel intensity within the sample."""
    return float(np.mean(sample.intensities[sample.mask]))


def std_intensity(sample: Sample) -> float:
    """Standard deviation of channel intensity within the sample."""
    return float(np.std(sample.intensities[sample.mask]))


def cv_intensity(sample: Sample) -> float:
    """Coefficient of variation of intensity, a proxy for texture coarseness."""
    return coefficient_of_variation(sample.intensities[sample.mask])


def edge_density(sample: Sample) -> float:
    """Fraction of 4-neighbour pixel pairs touching the sample that are edges.

    A pair is an edge when its intensities differ by more than
    ``params.edge_delta``. Pairs that straddle the sample outline are
    included, so sharp boundaries raise the value.
    """
    img = sample.intensities
    m = sample.mask
    delta = sample.params.edge_delta

    h_pairs = m[:, :-1] | m[:, 1:]
    v_pairs = m[:-1, :] | m[1:, :]
    total = int(np.count_nonzero(h_pairs)) + int(np.count_nonzero(v_pairs))
    if total == 0:
        return 0.0
    h_edges = np.abs(np.diff(img, axis=1)) > delta
    v_edges = np.abs(np.diff(img, axis=0)) > delta
    edges = int(np.count_nonzero(h_edges & h_pairs)) + int(np.count_nonzero(v_edges & v_pairs))
    return edges / total


def foreground_fraction(sample: Sample) -> float:
    """Share of the sample's pixels that belong to the shape mask."""
    total = np.count_nonzero(sample.mask)
    if total == 0:
        return 0.0
    return float(np.count_nonzero(sample.shape_mask & sample.mask)) / float(total)


def mitotic(sample: Sample) -> float:
    """1.0 if the disk around the sample center looks like a mitotic figure.

    The disk has radius ``mitotic_radius`` around the rounded center, clipped
    to the crop. A figure is mitotic when more than ``mitotic_dense_fraction``
    of the disk lies above ``mitotic_intensity`` and the bright pixels of its
    outer two-pixel ring (above ``mitotic_rim_intensity``) make up more than
    ``mitotic_rim_fraction`` of the disk. Otherwise 0.0.
    """
    p = sample.params
    cy, cx = (int(round(c)) for c in sample.center)
    yy, xx = np.indices(sample.intensities.shape)
    distance = np.hypot(yy - cy, xx - cx)
    disk = distance <= p.mitotic_radius
    total = np.count_nonzero(disk)
    if total == 0:
        return 0.0
    values = sample.intensities
    dense = np.count_nonzero(disk & (values > p.mitotic_intensity))
    rim = disk & (distance > p.mitotic_radius - 2)
    bright_rim = np.count_nonzero(rim & (values > p.mitotic_rim_intensity))
    if dense / total > p.mitotic_dense_fraction and bright_rim / total > p.mitotic_rim_fraction:
        return 1.0
    return 0.0


SHAPE_DESCRIPTORS = frozenset({"perimeter", "roundness", "radial_irregularity", "convex_complexity"})

# Only meaningful for sampling windows (always 1.0 for a region).
WINDOW_ONLY_DESCRIPTORS = frozenset({"foreground_fraction"})

# Only meaningful for segmented regions.
REGION_ONLY_DESCRIPTORS = frozenset({"mitotic"})

_BUILTIN_DESCRIPTORS: dict[str, Descriptor] = {
    "area": area,
    "perimeter": perimeter,
    "roundness": roundness,
    "radial_irregularity": radial_irregularity,
    "convex_complexity": convex_complexity,
    "mean_intensity": mean_intensity,
    "std_intensity": std_intensity,
    "cv_intensity": cv_intensity,
    "edge_density": edge_density,
    "foreground_fraction": foreground_fraction,
    "mitotic": mitotic,
}


class DescriptorRegistry:
    """Registry of available morphometric descriptors.

    Comes pre-loaded with the built-in descriptors. Custom descriptors can be
    registered via ``register()``; descriptor order is registration order.
    """

    def __init__(self) -> None:
        self._descriptors: dict[str, Descriptor] = dict(_BUILTIN_DESCRIPTORS)

    def register(self, name: str, func: Descriptor) -> None:
        """Register a custom descriptor.

        Args:
            name: Feature name (e.g., "eccentricity").
            func: Callable with signature (sample) -> float | None.

        Raises:
            ValueError: If name is empty.
        """
        if not name:
            raise ValueError("Descriptor name must not be empty")
        self._descriptors[name] = func

    def compute(self, name: str, sample: Sample) -> float | None:
        """Compute a named descriptor for one sample.

        Raises:
            KeyError: If the descriptor name is not registered.
        """
        if name not in self._descriptors:
            raise KeyError(
                f"Unknown descriptor {name!r}. "
                f"Available: {sorted(self._descriptors)}"
            )
        return self._descriptors[name](sample)

    def names(self, window: bool = False) -> list[str]:
        """Descriptor names in registration order, for regions or windows."""
        excluded = REGION_ONLY_DESCRIPTORS if window else WINDOW_ONLY_DESCRIPTORS
        return [n for n in self._descriptors if n not in excluded]

    def list_descriptors(self) -> list[str]:
        """Return sorted list of all registered descriptor names."""
        return sorted(self._descriptors)

    def __contains__(self, name: str) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)
