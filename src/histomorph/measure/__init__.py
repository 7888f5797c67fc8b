"""Morphometric descriptors for regions, sampling windows, and whole images."""

from histomorph.measure.descriptors import DescriptorRegistry, Sample
from histomorph.measure.extractor import (
    FeatureExtractor,
    extract_features,
    extract_window_features,
)
from histomorph.measure.summary import SUMMARY_FEATURES, summarize

__all__ = [
    "DescriptorRegistry",
    "FeatureExtractor",
    "SUMMARY_FEATURES",
    "Sample",
    "extract_features",
    "extract_window_features",
    "summarize",
]
