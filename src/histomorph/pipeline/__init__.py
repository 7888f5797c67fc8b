"""End-to-end analysis of one image."""

from histomorph.pipeline.pipeline import (
    INSUFFICIENT_STRUCTURE,
    STATUS_OK,
    AnalysisResult,
    CompositeResult,
    MorphometryPipeline,
    analyze,
)

__all__ = [
    "AnalysisResult",
    "CompositeResult",
    "INSUFFICIENT_STRUCTURE",
    "MorphometryPipeline",
    "STATUS_OK",
    "analyze",
]
