"""Image-level summary features aggregated from region and window vectors.

The summary vector is what composite scores are computed from. Its feature
names are fixed (``SUMMARY_FEATURES``) so weight tables can be validated
before any image is analyzed.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from histomorph.core.config import SummaryParams
from histomorph.core.models import Channel, FeatureVector, Region

logger = logging.getLogger(__name__)

SUMMARY_FEATURES: tuple[str, ...] = (
    "region_count",
    "mean_area",
    "mean_roundness",
    "mean_radial_irregularity",
    "mean_convex_complexity",
    "mean_edge_density",
    "mean_cv_intensity",
    "size_variation_cv",
    "intensity_variation_cv",
    "pleomorphism_index",
    "nc_ratio",
    "density_score",
    "chromatin_texture",
    "spatial_distribution",
    "mitotic_count",
    "mitotic_rate",
    "nuclear_density",
)

# summary name -> per-region descriptor averaged into it
_MEANS = {
    "mean_area": "area",
    "mean_roundness": "roundness",
    "mean_radial_irregularity": "radial_irregularity",
    "mean_convex_complexity": "convex_complexity",
    "mean_edge_density": "edge_density",
    "mean_cv_intensity": "cv_intensity",
}

# Regions this small are skipped when computing nuclear/cytoplasm ratios.
NC_MIN_AREA = 10

# mitotic_rate is reported per this many regions, nuclear_density per this
# many square pixels.
MITOTIC_RATE_SCALE = 1000.0
DENSITY_AREA_SCALE = 10000.0


def _defined(vectors: Sequence[FeatureVector], name: str) -> np.ndarray:
    return np.array(
        [v[name] for v in vectors if v.get(name) is not None], dtype=np.float64,
    )


def _mean_or_none(values: np.ndarray) -> float | None:
    if values.size == 0:
        return None
    return float(values.mean())


def _cv_or_none(values: np.ndarray) -> float | None:
    if values.size == 0:
        return None
    mean = float(values.mean())
    if mean == 0:
        return 0.0
    return float(values.std()) / mean


def nc_ratio(
    regions: Sequence[Region], secondary: Channel | None, params: SummaryParams,
) -> float | None:
    """Mean nuclear-to-cytoplasm ratio over regions.

    For each region larger than ``NC_MIN_AREA`` pixels, cytoplasm is the
    count of secondary-channel pixels above ``cytoplasm_threshold`` in the
    square of half-side ``cytoplasm_radius`` around the centroid. Regions
    with no cytoplasm pixels are skipped.

    Returns:
        The mean ratio clipped to 1, or None if no ratio could be computed.
    """
    if secondary is None:
        return None
    r = params.cytoplasm_radius
    ratios = []
    for region in regions:
        if region.area <= NC_MIN_AREA:
            continue
        cy = int(round(region.centroid_y))
        cx = int(round(region.centroid_x))
        window = secondary.data[
            max(0, cy - r):min(secondary.height, cy + r + 1),
            max(0, cx - r):min(secondary.width, cx + r + 1),
        ]
        cytoplasm = int(np.count_nonzero(window > params.cytoplasm_threshold))
        if cytoplasm > 0:
            ratios.append(region.area / cytoplasm)
    if not ratios:
        return None
    return float(min(np.mean(ratios), 1.0))


def density_features(
    window_vectors: Sequence[FeatureVector], params: SummaryParams,
) -> tuple[float, float | None]:
    """Density score and chromatin texture from sampling-window vectors.

    Windows whose ``foreground_fraction`` exceeds ``density_min_fraction``
    count as dense. The density score is the mean dense fraction (0.0 when
    no window is dense); texture combines the spread (std) and homogeneity
    (1 / (1 + variance)) of the dense fractions and is None without dense
    windows.
    """
    fractions = _defined(window_vectors, "foreground_fraction")
    dense = fractions[fractions > params.density_min_fraction]
    if dense.size == 0:
        return 0.0, None
    score = float(min(dense.mean(), 1.0))
    contrast = float(dense.std())
    homogeneity = 1.0 / (1.0 + float(dense.var()))
    texture = float(min((contrast + homogeneity) / 2.0, 1.0))
    return score, texture


def spatial_distribution(channel: Channel) -> float | None:
    """1 - variance of the four quadrant mean intensities, floored at 0.

    Even staining across the image gives values near 1.
    """
    h, w = channel.data.shape
    mid_y, mid_x = h // 2, w // 2
    quadrants = (
        channel.data[:mid_y, :mid_x],
        channel.data[:mid_y, mid_x:],
        channel.data[mid_y:, :mid_x],
        channel.data[mid_y:, mid_x:],
    )
    means = np.array([q.mean() for q in quadrants if q.size], dtype=np.float64)
    if means.size == 0:
        return None
    return 1.0 - min(float(means.var()), 1.0)


def mitotic_features(
    region_vectors: Sequence[FeatureVector],
) -> tuple[float | None, float | None]:
    """Count of mitotic regions and their rate per ``MITOTIC_RATE_SCALE`` regions.

    Both are 0.0 when there are no regions, and None when regions exist but
    none carries a ``mitotic`` value.
    """
    if not region_vectors:
        return 0.0, 0.0
    flags = _defined(region_vectors, "mitotic")
    if flags.size == 0:
        return None, None
    count = float(np.count_nonzero(flags))
    return count, count / flags.size * MITOTIC_RATE_SCALE


def summarize(
    region_vectors: Sequence[FeatureVector],
    regions: Sequence[Region],
    primary: Channel,
    secondary: Channel | None = None,
    window_vectors: Sequence[FeatureVector] = (),
    params: SummaryParams | None = None,
) -> FeatureVector:
    """Aggregate region and window descriptors into the image summary vector.

    Args:
        region_vectors: Per-region vectors, in region order.
        regions: The regions the vectors describe.
        primary: Channel the regions were segmented from.
        secondary: Counterstain channel for nuclear/cytoplasm ratios.
        window_vectors: Sampling-window vectors over ``primary``.
        params: Summary parameters. If None, uses defaults.

    Returns:
        FeatureVector with source ``"image"`` holding every name in
        ``SUMMARY_FEATURES``; undefined entries are None.

    Raises:
        ValueError: If the region and vector counts differ.
    """
    params = params or SummaryParams()
    if len(region_vectors) != len(regions):
        raise ValueError(
            f"Got {len(region_vectors)} feature vectors for {len(regions)} regions"
        )

    values: dict[str, float | None] = {"region_count": float(len(regions))}
    for summary_name, descriptor in _MEANS.items():
        values[summary_name] = _mean_or_none(_defined(region_vectors, descriptor))

    size_cv = _cv_or_none(_defined(region_vectors, "area"))
    intensity_cv = _cv_or_none(_defined(region_vectors, "mean_intensity"))
    values["size_variation_cv"] = size_cv
    values["intensity_variation_cv"] = intensity_cv
    if size_cv is None or intensity_cv is None:
        values["pleomorphism_index"] = None
    else:
        values["pleomorphism_index"] = min((size_cv + intensity_cv) / 2.0, 1.0)

    values["nc_ratio"] = nc_ratio(regions, secondary, params)
    values["density_score"], values["chromatin_texture"] = density_features(
        window_vectors, params,
    )
    values["spatial_distribution"] = spatial_distribution(primary)
    values["mitotic_count"], values["mitotic_rate"] = mitotic_features(region_vectors)
    values["nuclear_density"] = len(regions) * DENSITY_AREA_SCALE / primary.data.size

    summary = FeatureVector(
        source="image", values={name: values[name] for name in SUMMARY_FEATURES},
    )
    logger.debug(
        "Summarized %d regions and %d windows (%d features defined)",
        len(regions), len(window_vectors), len(summary.defined()),
    )
    return summary
