"""MorphometryPipeline: image -> stains -> regions -> features -> scores."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import pandas as pd

from histomorph.core.config import AnalysisConfig, CompositeDefinition
from histomorph.core.defaults import default_config
from histomorph.core.exceptions import AnalysisTimeoutError
from histomorph.core.image import ImageSource, load_image
from histomorph.core.models import FeatureVector, Region
from histomorph.measure.descriptors import SHAPE_DESCRIPTORS
from histomorph.measure.extractor import FeatureExtractor
from histomorph.measure.summary import summarize
from histomorph.scoring.engine import classify, score
from histomorph.segment.segmenter import RegionSegmenter
from histomorph.stain.preprocess import preprocess
from histomorph.stain.separator import separate

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
INSUFFICIENT_STRUCTURE = "insufficient_structure"


@dataclass(frozen=True)
class CompositeResult:
    """Score and classification of one composite."""

    name: str
    score: float
    label: str
    confidence: float
    contributions: Mapping[str, float] = field(default_factory=dict)
    skipped: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "score": self.score,
            "label": self.label,
            "confidence": self.confidence,
            "contributions": dict(self.contributions),
            "skipped": list(self.skipped),
        }


@dataclass(frozen=True, eq=False)
class AnalysisResult:
    """Everything one analysis produced, kept for auditing.

    Attributes:
        status: ``"ok"`` or ``"insufficient_structure"``.
        width: Image width in pixels.
        height: Image height in pixels.
        regions: Accepted regions in raster order of their seed pixel.
        region_features: One vector per region, in region order.
        window_features: Sampling-window vectors used for density features.
        summary: Image-level feature vector the composites were scored from.
        composites: composite name -> CompositeResult, in configured order.
        elapsed_seconds: Wall-clock time of the whole analysis.
        stage_seconds: stage name -> wall-clock time.
        warnings: Human-readable notes on recovered problems.
    """

    status: str
    width: int
    height: int
    regions: tuple[Region, ...] = field(repr=False)
    region_features: tuple[FeatureVector, ...] = field(repr=False)
    window_features: tuple[FeatureVector, ...] = field(repr=False)
    summary: FeatureVector = field(repr=False)
    composites: Mapping[str, CompositeResult] = field(default_factory=dict)
    elapsed_seconds: float = 0.0
    stage_seconds: Mapping[str, float] = field(default_factory=dict, repr=False)
    warnings: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def to_dataframe(self) -> pd.DataFrame:
        """Per-region features as a DataFrame, one row per region.

        Columns are ``region``, ``centroid_x``, ``centroid_y`` followed by the
        descriptor names; undefined descriptors are NaN.
        """
        base = ["region", "centroid_x", "centroid_y"]
        if not self.region_features:
            return pd.DataFrame(columns=base)
        rows = []
        for region, vector in zip(self.regions, self.region_features):
            row: dict[str, Any] = {
                "region": region.index,
                "centroid_x": region.centroid_x,
                "centroid_y": region.centroid_y,
            }
            row.update(vector.to_dict())
            rows.append(row)
        columns = base + list(self.region_features[0])
        return pd.DataFrame(rows, columns=columns).astype(
            {name: float for name in columns[3:]}
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain-data rendering (no numpy arrays) suitable for JSON."""
        return {
            "status": self.status,
            "width": self.width,
            "height": self.height,
            "regions": [
                {
                    "index": r.index,
                    "area": r.area,
                    "centroid_x": r.centroid_x,
                    "centroid_y": r.centroid_y,
                    "bounding_radius": r.bounding_radius,
                    "bbox": list(r.bbox),
                }
                for r in self.regions
            ],
            "region_features": [v.to_dict() for v in self.region_features],
            "summary": self.summary.to_dict(),
            "composites": {name: c.to_dict() for name, c in self.composites.items()},
            "elapsed_seconds": self.elapsed_seconds,
            "stage_seconds": dict(self.stage_seconds),
            "warnings": list(self.warnings),
        }


class _Deadline:
    """Wall-clock budget checked between stages."""

    def __init__(self, seconds: float | None) -> None:
        if seconds is not None and seconds < 0:
            raise ValueError(f"deadline_seconds must be >= 0, got {seconds}")
        self._seconds = seconds
        self._start = time.monotonic()

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self._start

    def check(self, stage: str) -> None:
        if self._seconds is not None and self.elapsed >= self._seconds:
            raise AnalysisTimeoutError(stage, self.elapsed)


class MorphometryPipeline:
    """Runs the full analysis for one configuration.

    The pipeline holds no per-image state, so one instance may analyze
    images from several threads at once.

    Args:
        config: Validated analysis configuration. If None, uses the defaults.
        max_workers: Threads used for per-region feature extraction;
            None or 1 extracts sequentially.
    """

    def __init__(
        self,
        config: AnalysisConfig | None = None,
        max_workers: int | None = None,
    ) -> None:
        self._config = config or default_config()
        self._max_workers = max_workers
        self._segmenter = RegionSegmenter(self._config.segmentation)
        self._extractor = FeatureExtractor(self._config.features)

    @property
    def config(self) -> AnalysisConfig:
        return self._config

    def analyze(
        self,
        source: ImageSource,
        deadline_seconds: float | None = None,
        progress_callback: Callable[[str, str], None] | None = None,
    ) -> AnalysisResult:
        """Analyze one image.

        Args:
            source: Raw buffer, array, or Image.
            deadline_seconds: Wall-clock budget, checked before each stage.
            progress_callback: Called with (stage, status_msg) after each stage.

        Returns:
            AnalysisResult. Fewer regions than ``config.min_regions`` yields
            status ``"insufficient_structure"`` with every composite assigned
            its lowest band.

        Raises:
            InvalidInputError: If the image is malformed or too small.
            AnalysisTimeoutError: If the deadline passes between stages.
        """
        cfg = self._config
        deadline = _Deadline(deadline_seconds)
        stage_seconds: dict[str, float] = {}
        warnings: list[str] = []

        def finish(stage: str, started: float, message: str) -> None:
            stage_seconds[stage] = time.monotonic() - started
            logger.debug("Stage %s: %s (%.4fs)", stage, message, stage_seconds[stage])
            if progress_callback:
                progress_callback(stage, message)

        deadline.check("load")
        started = time.monotonic()
        image = load_image(source, cfg.min_width, cfg.min_height)
        finish("load", started, f"{image.width}x{image.height}")

        deadline.check("separate")
        started = time.monotonic()
        channels = separate(image, cfg.stain_vectors, cfg.od_epsilon, cfg.od_scale)
        channels = preprocess(channels, cfg.preprocessing)
        primary = channels[cfg.segmentation_channel]
        secondary = (
            channels[cfg.secondary_channel] if cfg.secondary_channel is not None else None
        )
        finish("separate", started, f"{len(channels)} channels")

        deadline.check("segment")
        started = time.monotonic()
        segmentation = self._segmenter.run(primary)
        regions = segmentation.regions
        finish("segment", started, f"{len(regions)} regions")

        deadline.check("extract")
        started = time.monotonic()
        region_features = self._extractor.extract_all(
            regions, primary, max_workers=self._max_workers,
        )
        for vector in region_features:
            undefined = sorted(n for n in SHAPE_DESCRIPTORS if n in vector and vector[n] is None)
            if undefined:
                message = (
                    f"{vector.source}: too few pixels for shape descriptors "
                    f"({', '.join(undefined)})"
                )
                logger.warning("%s", message)
                warnings.append(message)
        finish("extract", started, f"{len(region_features)} feature vectors")

        deadline.check("summarize")
        started = time.monotonic()
        window_features = self._extractor.sample_grid(
            primary, cfg.summary.window_radius, cfg.segmentation.min_intensity,
        )
        summary = summarize(
            region_features, regions, primary, secondary, window_features, cfg.summary,
        )
        finish("summarize", started, f"{len(summary.defined())} summary features")

        deadline.check("score")
        started = time.monotonic()
        if len(regions) < cfg.min_regions:
            status = INSUFFICIENT_STRUCTURE
            logger.info(
                "Found %d regions (need %d); reporting lowest bands",
                len(regions), cfg.min_regions,
            )
            composites = {
                c.name: self._insufficient(c) for c in cfg.composites
            }
        else:
            status = STATUS_OK
            composites = {}
            for composite in cfg.composites:
                result = self._score(composite, summary)
                if result.skipped:
                    warnings.append(
                        f"{composite.name}: undefined features skipped "
                        f"({', '.join(result.skipped)})"
                    )
                composites[composite.name] = result
        finish("score", started, status)

        elapsed = deadline.elapsed
        logger.debug("Analysis finished in %.4fs with status %s", elapsed, status)
        return AnalysisResult(
            status=status,
            width=image.width,
            height=image.height,
            regions=tuple(regions),
            region_features=tuple(region_features),
            window_features=tuple(window_features),
            summary=summary,
            composites=composites,
            elapsed_seconds=elapsed,
            stage_seconds=stage_seconds,
            warnings=tuple(warnings),
        )

    def _score(self, composite: CompositeDefinition, summary: FeatureVector) -> CompositeResult:
        bands = self._config.bands_for(composite)
        composite_score = score(
            summary,
            composite.weights,
            name=composite.name,
            renormalize=composite.renormalize,
            floor=bands.floor,
            ceiling=bands.ceiling,
        )
        classification = classify(
            composite_score.value, bands, self._config.confidence_adjustment,
        )
        return CompositeResult(
            name=composite.name,
            score=composite_score.value,
            label=classification.label,
            confidence=classification.confidence,
            contributions=dict(composite_score.contributions),
            skipped=composite_score.skipped,
        )

    def _insufficient(self, composite: CompositeDefinition) -> CompositeResult:
        bands = self._config.bands_for(composite)
        return CompositeResult(
            name=composite.name,
            score=bands.floor,
            label=bands.lowest.label,
            confidence=bands.lowest.base_confidence,
            skipped=tuple(composite.weights.features),
        )


def analyze(
    source: ImageSource,
    config: AnalysisConfig | None = None,
    deadline_seconds: float | None = None,
    max_workers: int | None = None,
) -> AnalysisResult:
    """Analyze one image with a one-off :class:`MorphometryPipeline`."""
    pipeline = MorphometryPipeline(config, max_workers=max_workers)
    return pipeline.analyze(source, deadline_seconds=deadline_seconds)
