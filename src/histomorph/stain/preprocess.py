"""Optional channel clean-up: median denoising and contrast stretching."""

from __future__ import annotations

from scipy import ndimage

from histomorph.core.config import PreprocessingParams
from histomorph.core.models import Channel


def median_filter(channel: Channel, size: int) -> Channel:
    """Median-filter a channel with a square ``size`` x ``size`` footprint."""
    filtered = ndimage.median_filter(channel.data, size=size, mode="nearest")
    return Channel(name=channel.name, data=filtered)


def stretch_contrast(channel: Channel) -> Channel:
    """Linearly stretch a channel so its range spans [0, 1].

    A constant channel has no range to stretch and is returned unchanged.
    """
    lo = float(channel.data.min())
    hi = float(channel.data.max())
    if hi - lo <= 0:
        return channel
    return Channel(name=channel.name, data=(channel.data - lo) / (hi - lo))


def preprocess(channels: list[Channel], params: PreprocessingParams) -> list[Channel]:
    """Apply the configured clean-up steps to every channel, in order."""
    result = []
    for channel in channels:
        if params.median_filter_size:
            channel = median_filter(channel, params.median_filter_size)
        if params.contrast_stretch:
            channel = stretch_contrast(channel)
        result.append(channel)
    return result
