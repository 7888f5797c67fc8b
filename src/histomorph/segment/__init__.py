"""histomorph segment: connected-region segmentation of stain channels."""

from histomorph.core.config import SegmentationParams
from histomorph.segment.segmenter import (
    RegionSegmenter,
    SegmentationResult,
    segment,
    segment_channels,
)

__all__ = [
    "RegionSegmenter",
    "segment",
    "segment_channels",
    "SegmentationParams",
    "SegmentationResult",
]
