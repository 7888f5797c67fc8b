"""Immutable analysis configuration.

Every option is validated when the dataclass is constructed, so a bad
configuration fails at load time instead of degrading later analyses.
Instances are never mutated and can be shared across threads.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from histomorph.core.exceptions import InvalidConfigurationError, UnknownFeatureError
from histomorph.core.image import DEFAULT_MIN_HEIGHT, DEFAULT_MIN_WIDTH
from histomorph.core.models import StainVector


def _finite(value: float, name: str) -> None:
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidConfigurationError(f"{name} must be a finite number, got {value!r}")


@dataclass(frozen=True)
class SegmentationParams:
    """Parameters for region segmentation.

    Attributes:
        min_intensity: Pixels strictly above this value are foreground.
        min_area: Smallest accepted region, in pixels.
        max_area: Largest accepted region, in pixels.
        connectivity: 4 or 8 neighbour connectivity.
    """

    min_intensity: float = 0.5
    min_area: int = 20
    max_area: int = 5000
    connectivity: int = 8

    def __post_init__(self) -> None:
        _finite(self.min_intensity, "min_intensity")
        if not (0.0 <= self.min_intensity <= 1.0):
            raise InvalidConfigurationError(
                f"min_intensity must be in [0, 1], got {self.min_intensity}"
            )
        if self.min_area < 1:
            raise InvalidConfigurationError(f"min_area must be >= 1, got {self.min_area}")
        if self.max_area < self.min_area:
            raise InvalidConfigurationError(
                f"max_area ({self.max_area}) must be >= min_area ({self.min_area})"
            )
        if self.connectivity not in (4, 8):
            raise InvalidConfigurationError(
                f"connectivity must be 4 or 8, got {self.connectivity}"
            )


@dataclass(frozen=True)
class FeatureParams:
    """Parameters for per-region and per-window descriptors.

    Attributes:
        min_shape_pixels: Below this many pixels shape descriptors are undefined.
        ray_step_degrees: Angular spacing of the radial contour rays.
        edge_delta: Intensity difference that counts a pixel pair as an edge.
        mitotic_radius: Radius of the disk around a region's centroid that is
            checked for a mitotic figure.
        mitotic_intensity: Intensity above which a disk pixel counts as dense.
        mitotic_rim_intensity: Intensity above which an outer-ring pixel
            counts as bright.
        mitotic_dense_fraction: Share of dense disk pixels a mitotic figure
            must exceed.
        mitotic_rim_fraction: Share of the disk that bright outer-ring pixels
            must exceed.
    """

    min_shape_pixels: int = 10
    ray_step_degrees: float = 10.0
    edge_delta: float = 0.1
    mitotic_radius: int = 6
    mitotic_intensity: float = 0.85
    mitotic_rim_intensity: float = 0.8
    mitotic_dense_fraction: float = 0.7
    mitotic_rim_fraction: float = 0.3

    def __post_init__(self) -> None:
        if self.min_shape_pixels < 1:
            raise InvalidConfigurationError(
                f"min_shape_pixels must be >= 1, got {self.min_shape_pixels}"
            )
        _finite(self.ray_step_degrees, "ray_step_degrees")
        if not (0 < self.ray_step_degrees <= 90):
            raise InvalidConfigurationError(
                f"ray_step_degrees must be in (0, 90], got {self.ray_step_degrees}"
            )
        _finite(self.edge_delta, "edge_delta")
        if not (0 <= self.edge_delta < 1):
            raise InvalidConfigurationError(
                f"edge_delta must be in [0, 1), got {self.edge_delta}"
            )
        if self.mitotic_radius < 2:
            raise InvalidConfigurationError(
                f"mitotic_radius must be >= 2, got {self.mitotic_radius}"
            )
        for name in (
            "mitotic_intensity",
            "mitotic_rim_intensity",
            "mitotic_dense_fraction",
            "mitotic_rim_fraction",
        ):
            value = getattr(self, name)
            _finite(value, name)
            if not (0.0 <= value <= 1.0):
                raise InvalidConfigurationError(f"{name} must be in [0, 1], got {value}")


@dataclass(frozen=True)
class SummaryParams:
    """Parameters for the image-level (population) features.

    Attributes:
        window_radius: Radius of the sampling windows laid over the image.
        density_min_fraction: Foreground fraction above which a window is dense.
        cytoplasm_radius: Half-side of the square searched around each centroid.
        cytoplasm_threshold: Counterstain intensity that counts as cytoplasm.
    """

    window_radius: int = 25
    density_min_fraction: float = 0.3
    cytoplasm_radius: int = 15
    cytoplasm_threshold: float = 0.4

    def __post_init__(self) -> None:
        if self.window_radius < 1:
            raise InvalidConfigurationError(
                f"window_radius must be >= 1, got {self.window_radius}"
            )
        if self.cytoplasm_radius < 1:
            raise InvalidConfigurationError(
                f"cytoplasm_radius must be >= 1, got {self.cytoplasm_radius}"
            )
        for name in ("density_min_fraction", "cytoplasm_threshold"):
            value = getattr(self, name)
            _finite(value, name)
            if not (0.0 <= value <= 1.0):
                raise InvalidConfigurationError(f"{name} must be in [0, 1], got {value}")


@dataclass(frozen=True)
class PreprocessingParams:
    """Optional channel clean-up applied right after stain separation."""

    median_filter_size: int = 0
    contrast_stretch: bool = False

    def __post_init__(self) -> None:
        size = self.median_filter_size
        if size != 0 and (size < 3 or size % 2 == 0):
            raise InvalidConfigurationError(
                f"median_filter_size must be 0 or an odd number >= 3, got {size}"
            )
        if not isinstance(self.contrast_stretch, bool):
            raise InvalidConfigurationError(
                f"contrast_stretch must be true or false, got {self.contrast_stretch!r}"
            )


@dataclass(frozen=True)
class WeightTable:
    """Ordered (feature, weight) pairs combined into one composite score."""

    entries: tuple[tuple[str, float], ...]

    def __post_init__(self) -> None:
        entries = tuple((str(name), float(weight)) for name, weight in self.entries)
        if not entries:
            raise InvalidConfigurationError("weight table must not be empty")
        seen: set[str] = set()
        for name, weight in entries:
            if not name:
                raise InvalidConfigurationError("weight table feature names must not be empty")
            if name in seen:
                raise InvalidConfigurationError(f"duplicate feature {name!r} in weight table")
            _finite(weight, f"weight of {name!r}")
            seen.add(name)
        object.__setattr__(self, "entries", entries)

    def __iter__(self) -> Iterator[tuple[str, float]]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def features(self) -> list[str]:
        return [name for name, _ in self.entries]

    @property
    def total_weight(self) -> float:
        return float(sum(weight for _, weight in self.entries))


@dataclass(frozen=True)
class ThresholdBand:
    """A score interval starting at ``lower_bound`` mapped to a label."""

    lower_bound: float
    label: str
    base_confidence: float

    def __post_init__(self) -> None:
        _finite(self.lower_bound, "lower_bound")
        _finite(self.base_confidence, "base_confidence")
        if not self.label:
            raise InvalidConfigurationError("band label must not be empty")
        if not (0.0 <= self.base_confidence <= 1.0):
            raise InvalidConfigurationError(
                f"base_confidence of band {self.label!r} must be in [0, 1], "
                f"got {self.base_confidence}"
            )


@dataclass(frozen=True)
class ThresholdBands:
    """Contiguous, non-overlapping bands covering ``[floor, ceiling]``.

    Bands may be given in ascending or descending order of lower bound; they
    are stored highest first so a linear scan finds the matching band.
    """

    bands: tuple[ThresholdBand, ...]
    floor: float = 0.0
    ceiling: float = 1.0

    def __post_init__(self) -> None:
        bands = tuple(self.bands)
        if not bands:
            raise InvalidConfigurationError("threshold bands must not be empty")
        _finite(self.floor, "score floor")
        _finite(self.ceiling, "score ceiling")
        if self.ceiling <= self.floor:
            raise InvalidConfigurationError(
                f"score ceiling ({self.ceiling}) must exceed floor ({self.floor})"
            )

        bounds = [b.lower_bound for b in bands]
        ascending = all(a < b for a, b in zip(bounds, bounds[1:]))
        descending = all(a > b for a, b in zip(bounds, bounds[1:]))
        if not (ascending or descending):
            raise InvalidConfigurationError(
                f"threshold band lower bounds must be strictly monotonic, got {bounds}"
            )
        if ascending and len(bands) > 1:
            bands = tuple(reversed(bands))

        labels = [b.label for b in bands]
        if len(set(labels)) != len(labels):
            raise InvalidConfigurationError(f"duplicate band labels in {labels}")
        if bands[-1].lower_bound > self.floor:
            raise InvalidConfigurationError(
                f"bands are not exhaustive: lowest lower bound "
                f"{bands[-1].lower_bound} is above the score floor {self.floor}"
            )
        if bands[0].lower_bound > self.ceiling:
            raise InvalidConfigurationError(
                f"band {bands[0].label!r} starts above the score ceiling {self.ceiling}"
            )
        object.__setattr__(self, "bands", bands)

    def __iter__(self) -> Iterator[ThresholdBand]:
        return iter(self.bands)

    def __len__(self) -> int:
        return len(self.bands)

    @property
    def lowest(self) -> ThresholdBand:
        return self.bands[-1]

    def upper_bound(self, band: ThresholdBand) -> float:
        """Exclusive upper edge of ``band`` (the ceiling for the top band)."""
        i = self.bands.index(band)
        return self.ceiling if i == 0 else self.bands[i - 1].lower_bound


@dataclass(frozen=True)
class CompositeDefinition:
    """One named composite score and how it is classified.

    Attributes:
        name: Composite identifier, e.g. "nuclear_morphometry".
        weights: The weight table.
        renormalize: Divide by the applied weight when features are missing.
        bands: Bands for this composite; None uses the shared bands.
    """

    name: str
    weights: WeightTable
    renormalize: bool = False
    bands: ThresholdBands | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise InvalidConfigurationError("composite name must not be empty")


def default_known_features() -> frozenset[str]:
    from histomorph.measure.summary import SUMMARY_FEATURES

    return frozenset(SUMMARY_FEATURES)


@dataclass(frozen=True)
class AnalysisConfig:
    """Complete, immutable configuration of one analysis pipeline.

    Attributes:
        stain_vectors: Deconvolution basis, one channel per vector.
        composites: Composite score definitions, scored in order.
        threshold_bands: Shared bands for composites without their own.
        segmentation: Region segmentation parameters.
        features: Per-region descriptor parameters.
        summary: Image-level feature parameters.
        preprocessing: Optional channel clean-up.
        min_width: Smallest accepted image width.
        min_height: Smallest accepted image height.
        od_epsilon: Floor applied to normalized intensity before log10.
        od_scale: Multiplier applied to the optical-density projection.
        segmentation_channel: Index of the channel that is segmented.
        secondary_channel: Index of the counterstain channel, or None.
        confidence_adjustment: Span of the in-band confidence bonus/penalty.
        min_regions: Fewer regions than this is an insufficient-structure result.
        known_features: Feature names weight tables may reference. Defaults to
            the image-level summary features.
    """

    stain_vectors: tuple[StainVector, ...]
    composites: tuple[CompositeDefinition, ...]
    threshold_bands: ThresholdBands
    segmentation: SegmentationParams = field(default_factory=SegmentationParams)
    features: FeatureParams = field(default_factory=FeatureParams)
    summary: SummaryParams = field(default_factory=SummaryParams)
    preprocessing: PreprocessingParams = field(default_factory=PreprocessingParams)
    min_width: int = DEFAULT_MIN_WIDTH
    min_height: int = DEFAULT_MIN_HEIGHT
    od_epsilon: float = 1e-6
    od_scale: float = 1.0
    segmentation_channel: int = 0
    secondary_channel: int | None = 1
    confidence_adjustment: float = 0.1
    min_regions: int = 1
    known_features: frozenset[str] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "stain_vectors", tuple(self.stain_vectors))
        object.__setattr__(self, "composites", tuple(self.composites))

        if not self.stain_vectors:
            raise InvalidConfigurationError("at least one stain vector is required")
        for vector in self.stain_vectors:
            if vector.is_degenerate:
                raise InvalidConfigurationError(f"stain vector {vector.name!r} is degenerate")
        names = [v.name for v in self.stain_vectors]
        if len(set(names)) != len(names):
            raise InvalidConfigurationError(f"duplicate stain vector names in {names}")

        n = len(self.stain_vectors)
        if not (0 <= self.segmentation_channel < n):
            raise InvalidConfigurationError(
                f"segmentation_channel {self.segmentation_channel} out of range for {n} stains"
            )
        if self.secondary_channel is not None and not (0 <= self.secondary_channel < n):
            raise InvalidConfigurationError(
                f"secondary_channel {self.secondary_channel} out of range for {n} stains"
            )

        _finite(self.od_epsilon, "od_epsilon")
        if not (0 < self.od_epsilon < 1):
            raise InvalidConfigurationError(f"od_epsilon must be in (0, 1), got {self.od_epsilon}")
        _finite(self.od_scale, "od_scale")
        if self.od_scale <= 0:
            raise InvalidConfigurationError(f"od_scale must be > 0, got {self.od_scale}")
        if self.min_width < 1 or self.min_height < 1:
            raise InvalidConfigurationError("minimum image dimensions must be >= 1")
        _finite(self.confidence_adjustment, "confidence_adjustment")
        if not (0 <= self.confidence_adjustment <= 1):
            raise InvalidConfigurationError(
                f"confidence_adjustment must be in [0, 1], got {self.confidence_adjustment}"
            )
        if self.min_regions < 0:
            raise InvalidConfigurationError(f"min_regions must be >= 0, got {self.min_regions}")

        if not self.composites:
            raise InvalidConfigurationError("at least one composite score is required")
        composite_names = [c.name for c in self.composites]
        if len(set(composite_names)) != len(composite_names):
            raise InvalidConfigurationError(f"duplicate composite names in {composite_names}")

        known = self.known_features
        if known is None:
            known = default_known_features()
        object.__setattr__(self, "known_features", frozenset(known))
        for composite in self.composites:
            validate_weight_table(composite.weights, self.known_features, composite.name)

    def bands_for(self, composite: CompositeDefinition) -> ThresholdBands:
        return composite.bands if composite.bands is not None else self.threshold_bands

    def stain_names(self) -> list[str]:
        return [v.name for v in self.stain_vectors]


def validate_weight_table(
    table: WeightTable,
    known_features: Iterable[str],
    name: str | None = None,
) -> None:
    """Check that every feature a weight table references can be produced.

    Raises:
        UnknownFeatureError: For the first unknown feature name.
    """
    known = set(known_features)
    for feature, _ in table:
        if feature not in known:
            raise UnknownFeatureError(feature, name)
