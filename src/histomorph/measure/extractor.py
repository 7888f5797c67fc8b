"""FeatureExtractor: per-region and per-window descriptor vectors."""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Sequence

import numpy as np

from histomorph.core.config import FeatureParams
from histomorph.core.models import Channel, FeatureVector, Region
from histomorph.measure.descriptors import DescriptorRegistry, Sample

logger = logging.getLogger(__name__)


class FeatureExtractor:
    """Compute descriptor vectors for regions and circular sampling windows.

    Uses bounding-box cropping: each region is measured on its bounding box
    padded by ``mitotic_radius`` pixels (clipped to the channel), so outline
    pixels always see their outside neighbours and the mitotic disk around
    the centroid is never cut short by the crop.

    Args:
        params: Descriptor parameters. If None, uses defaults.
        registry: Optional DescriptorRegistry. If None, uses the builtins.
    """

    def __init__(
        self,
        params: FeatureParams | None = None,
        registry: DescriptorRegistry | None = None,
    ) -> None:
        self._params = params or FeatureParams()
        self._registry = registry or DescriptorRegistry()

    @property
    def params(self) -> FeatureParams:
        return self._params

    @property
    def registry(self) -> DescriptorRegistry:
        return self._registry

    def extract(self, region: Region, channel: Channel | None = None) -> FeatureVector:
        """Describe one region.

        Args:
            region: Region to measure.
            channel: Channel to read intensities from. Defaults to the
                channel the region was segmented from.

        Returns:
            FeatureVector with source ``"region:<index>"``. Shape descriptors
            are None when the region has fewer than ``min_shape_pixels``.

        Raises:
            ValueError: If ``channel`` does not match the region's channel size.
        """
        channel = channel or region.channel
        if channel.data.shape != region.channel.data.shape:
            raise ValueError(
                f"Channel {channel.name!r} shape {channel.data.shape} does not "
                f"match region channel shape {region.channel.data.shape}"
            )
        x, y, w, h = region.bbox
        pad = max(1, self._params.mitotic_radius)
        y0 = max(0, y - pad)
        x0 = max(0, x - pad)
        y1 = min(channel.height, y + h + pad)
        x1 = min(channel.width, x + w + pad)

        mask = np.zeros((y1 - y0, x1 - x0), dtype=bool)
        mask[region.pixels[:, 0] - y0, region.pixels[:, 1] - x0] = True
        sample = Sample(
            intensities=channel.data[y0:y1, x0:x1],
            mask=mask,
            shape_mask=mask,
            center=(region.centroid_y - y0, region.centroid_x - x0),
            params=self._params,
        )
        return self._describe(f"region:{region.index}", sample, window=False)

    def extract_window(
        self,
        channel: Channel,
        center_x: float,
        center_y: float,
        radius: int,
        min_intensity: float,
    ) -> FeatureVector:
        """Describe a circular window of a channel.

        The window holds every pixel within ``radius`` of the center, clipped
        to the channel. Shape descriptors measure the pixels above
        ``min_intensity``; intensity and edge descriptors use the whole disk.

        Raises:
            ValueError: If the radius is below 1 or the center lies outside
                the channel.
        """
        if radius < 1:
            raise ValueError(f"radius must be >= 1, got {radius}")
        if not (0 <= center_x < channel.width and 0 <= center_y < channel.height):
            raise ValueError(
                f"Window center ({center_x}, {center_y}) is outside "
                f"{channel.width}x{channel.height} channel"
            )
        y0 = max(0, int(math.floor(center_y - radius)))
        x0 = max(0, int(math.floor(center_x - radius)))
        y1 = min(channel.height, int(math.ceil(center_y + radius)) + 1)
        x1 = min(channel.width, int(math.ceil(center_x + radius)) + 1)

        intensities = channel.data[y0:y1, x0:x1]
        yy, xx = np.mgrid[y0:y1, x0:x1]
        disk = (yy - center_y) ** 2 + (xx - center_x) ** 2 <= radius ** 2
        sample = Sample(
            intensities=intensities,
            mask=disk,
            shape_mask=disk & (intensities > min_intensity),
            center=(center_y - y0, center_x - x0),
            params=self._params,
        )
        return self._describe(f"window:{center_x:g},{center_y:g}", sample, window=True)

    def extract_all(
        self,
        regions: Sequence[Region],
        channel: Channel | None = None,
        max_workers: int | None = None,
    ) -> list[FeatureVector]:
        """Describe many regions, optionally on worker threads.

        Results are returned in the order of ``regions`` regardless of
        which worker finishes first.
        """
        if not max_workers or max_workers <= 1 or len(regions) <= 1:
            return [self.extract(r, channel) for r in regions]
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(lambda r: self.extract(r, channel), regions))

    def sample_grid(
        self, channel: Channel, radius: int, min_intensity: float,
    ) -> list[FeatureVector]:
        """Describe non-overlapping windows tiled across the channel.

        Window centers step by ``2 * radius`` starting at ``radius``; only
        windows that fit entirely inside the channel are sampled. Windows are
        returned in raster order of their centers.
        """
        step = 2 * radius
        centers_y = range(radius, channel.height - radius + 1, step)
        centers_x = range(radius, channel.width - radius + 1, step)
        vectors = [
            self.extract_window(channel, cx, cy, radius, min_intensity)
            for cy in centers_y
            for cx in centers_x
        ]
        logger.debug(
            "Sampled %d windows of radius %d on channel %s",
            len(vectors), radius, channel.name,
        )
        return vectors

    def _describe(self, source: str, sample: Sample, window: bool) -> FeatureVector:
        values = {
            name: self._registry.compute(name, sample)
            for name in self._registry.names(window=window)
        }
        return FeatureVector(source=source, values=values)


def extract_features(
    region: Region,
    channel: Channel | None = None,
    params: FeatureParams | None = None,
) -> FeatureVector:
    """Describe one region with the built-in descriptors."""
    return FeatureExtractor(params).extract(region, channel)


def extract_window_features(
    channel: Channel,
    center_x: float,
    center_y: float,
    radius: int,
    min_intensity: float,
    params: FeatureParams | None = None,
) -> FeatureVector:
    """Describe one circular window with the built-in descriptors."""
    return FeatureExtractor(params).extract_window(
        channel, center_x, center_y, radius, min_intensity,
    )
