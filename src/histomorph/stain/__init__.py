"""histomorph stain: color deconvolution into per-stain channels."""

from histomorph.stain.preprocess import median_filter, preprocess, stretch_contrast
from histomorph.stain.separator import rgb_to_od, separate

__all__ = [
    "median_filter",
    "preprocess",
    "rgb_to_od",
    "separate",
    "stretch_contrast",
]
