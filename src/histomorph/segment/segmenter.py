"""RegionSegmenter: threshold a channel and split it into connected regions."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from scipy import ndimage

from histomorph.core.config import SegmentationParams
from histomorph.core.models import Channel, Region

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class SegmentationResult:
    """Result of segmenting one channel.

    Attributes:
        channel: Name of the segmented channel.
        regions: Accepted regions in raster order of their seed pixel.
        label_image: int32 image, 0 = background/rejected, ``index + 1`` for
            each accepted region.
        foreground_pixels: Pixels strictly above the intensity threshold.
        components_found: Connected components before the area filter.
        rejected_small: Components below ``min_area``.
        rejected_large: Components above ``max_area``.
    """

    channel: str
    regions: list[Region]
    label_image: np.ndarray = field(repr=False)
    foreground_pixels: int
    components_found: int
    rejected_small: int
    rejected_large: int

    @property
    def rejected_pixels(self) -> int:
        """Foreground pixels that belong to no accepted region."""
        return self.foreground_pixels - sum(r.area for r in self.regions)


class RegionSegmenter:
    """Group above-threshold pixels into connected candidate structures.

    Components are found with ``scipy.ndimage.label`` (no recursion, memory
    bounded by the label array). Every foreground pixel ends up in exactly
    one component; components outside ``[min_area, max_area]`` are dropped
    but their pixels are never reassigned.

    Args:
        params: Threshold, area bounds, and connectivity.
    """

    def __init__(self, params: SegmentationParams | None = None) -> None:
        self._params = params or SegmentationParams()

    @property
    def params(self) -> SegmentationParams:
        return self._params

    def run(self, channel: Channel) -> SegmentationResult:
        """Segment a channel.

        Args:
            channel: Channel to scan.

        Returns:
            SegmentationResult; ``regions`` is empty when nothing exceeds the
            threshold.
        """
        p = self._params
        foreground = channel.data > p.min_intensity
        foreground_pixels = int(np.count_nonzero(foreground))
        height, width = channel.data.shape
        label_image = np.zeros((height, width), dtype=np.int32)

        if foreground_pixels == 0:
            logger.info("No pixels above %.3f in channel %s", p.min_intensity, channel.name)
            return SegmentationResult(
                channel=channel.name,
                regions=[],
                label_image=label_image,
                foreground_pixels=0,
                components_found=0,
                rejected_small=0,
                rejected_large=0,
            )

        # rank 1 = 4-connected cross, rank 2 = full 3x3 (8-connected)
        structure = ndimage.generate_binary_structure(2, 1 if p.connectivity == 4 else 2)
        labels, n_components = ndimage.label(foreground, structure=structure)

        # Group pixel indices by label; a stable sort keeps raster order
        # within each component, so the first index is the seed pixel.
        flat = labels.ravel()
        order = np.argsort(flat, kind="stable")
        counts = np.bincount(flat, minlength=n_components + 1)
        ends = np.cumsum(counts)
        starts = ends - counts

        seeds = order[starts[1:]]
        by_seed = np.argsort(seeds, kind="stable") + 1

        regions: list[Region] = []
        rejected_small = 0
        rejected_large = 0
        for label in by_seed:
            area = int(counts[label])
            if area < p.min_area:
                rejected_small += 1
                continue
            if area > p.max_area:
                rejected_large += 1
                continue
            members = order[starts[label]:ends[label]]
            ys, xs = np.divmod(members, width)
            region = Region.from_pixels(
                index=len(regions),
                pixels=np.column_stack((ys, xs)),
                channel=channel,
            )
            label_image.flat[members] = region.index + 1
            regions.append(region)

        logger.debug(
            "Channel %s: %d components, %d accepted, %d too small, %d too large",
            channel.name, n_components, len(regions), rejected_small, rejected_large,
        )
        return SegmentationResult(
            channel=channel.name,
            regions=regions,
            label_image=label_image,
            foreground_pixels=foreground_pixels,
            components_found=int(n_components),
            rejected_small=rejected_small,
            rejected_large=rejected_large,
        )


def segment(
    channel: Channel,
    min_intensity: float,
    min_area: int,
    max_area: int,
    connectivity: int = 8,
) -> list[Region]:
    """Segment a channel into regions (see :class:`RegionSegmenter`)."""
    params = SegmentationParams(
        min_intensity=min_intensity,
        min_area=min_area,
        max_area=max_area,
        connectivity=connectivity,
    )
    return RegionSegmenter(params).run(channel).regions


def segment_channels(
    channels: Sequence[Channel],
    params: SegmentationParams,
    max_workers: int | None = None,
) -> list[SegmentationResult]:
    """Segment independent channels, optionally on worker threads.

    Each channel gets its own label buffers, so nothing is shared between
    workers. Results come back in the order of ``channels``.
    """
    segmenter = RegionSegmenter(params)
    if not max_workers or max_workers <= 1 or len(channels) <= 1:
        return [segmenter.run(ch) for ch in channels]
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(segmenter.run, channels))
