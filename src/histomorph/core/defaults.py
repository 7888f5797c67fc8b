"""Built-in H&E analysis configuration."""

from __future__ import annotations

from histomorph.core.config import (
    AnalysisConfig,
    CompositeDefinition,
    SegmentationParams,
    ThresholdBand,
    ThresholdBands,
    WeightTable,
)
from histomorph.core.models import StainVector

# Ruifrok & Johnston H&E(+residual) basis.
HEMATOXYLIN = StainVector("hematoxylin", 0.65, 0.70, 0.29)
EOSIN = StainVector("eosin", 0.07, 0.99, 0.11)
RESIDUAL = StainVector("residual", 0.27, 0.57, 0.78)

DEFAULT_STAIN_VECTORS = (HEMATOXYLIN, EOSIN, RESIDUAL)

NUCLEAR_MORPHOMETRY = CompositeDefinition(
    name="nuclear_morphometry",
    weights=WeightTable((
        ("mean_convex_complexity", 0.3),
        ("pleomorphism_index", 0.3),
        ("nc_ratio", 0.2),
        ("size_variation_cv", 0.2),
    )),
)

MULTI_SCALE = CompositeDefinition(
    name="multi_scale",
    weights=WeightTable((
        ("density_score", 0.3),
        ("chromatin_texture", 0.25),
        ("mean_edge_density", 0.25),
        ("spatial_distribution", 0.2),
    )),
)

DEFAULT_BANDS = ThresholdBands((
    ThresholdBand(0.8, "high_grade", 0.85),
    ThresholdBand(0.6, "intermediate_grade", 0.75),
    ThresholdBand(0.4, "low_grade", 0.7),
    ThresholdBand(0.0, "benign", 0.6),
))


def default_config() -> AnalysisConfig:
    """Return the built-in H&E nuclear morphometry configuration."""
    return AnalysisConfig(
        stain_vectors=DEFAULT_STAIN_VECTORS,
        composites=(NUCLEAR_MORPHOMETRY, MULTI_SCALE),
        threshold_bands=DEFAULT_BANDS,
        segmentation=SegmentationParams(
            min_intensity=0.5, min_area=20, max_area=5000, connectivity=8,
        ),
    )
