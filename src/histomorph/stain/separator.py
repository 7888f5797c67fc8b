"""Color deconvolution: project RGB optical density onto stain vectors.

Beer-Lambert: OD = -log10(I / I0), with I0 = 255. Stain concentrations are
additive in OD space, so each stain channel is the dot product of a pixel's
OD triple with that stain's absorbance vector.

Reference:
    Ruifrok AC, Johnston DA. "Quantification of histochemical staining by
    color deconvolution." Anal Quant Cytol Histol, 2001.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from histomorph.core.exceptions import InvalidConfigurationError
from histomorph.core.models import Channel, Image, StainVector

logger = logging.getLogger(__name__)


def rgb_to_od(rgb: np.ndarray, epsilon: float = 1e-6) -> np.ndarray:
    """Convert 8-bit RGB samples to optical density.

    Args:
        rgb: Array (..., 3) of intensities in [0, 255].
        epsilon: Floor on the normalized intensity, keeps log10 finite for
            black pixels.

    Returns:
        float64 array (..., 3) with values in [0, -log10(epsilon)].
    """
    normalized = rgb.astype(np.float64) / 255.0
    return -np.log10(np.maximum(normalized, epsilon))


def _check_vectors(stain_vectors: Sequence[StainVector]) -> None:
    if len(stain_vectors) == 0:
        raise InvalidConfigurationError("at least one stain vector is required")
    for vector in stain_vectors:
        if vector.is_degenerate:
            raise InvalidConfigurationError(f"stain vector {vector.name!r} is degenerate")


def separate(
    image: Image,
    stain_vectors: Sequence[StainVector],
    epsilon: float = 1e-6,
    scale: float = 1.0,
) -> list[Channel]:
    """Unmix an image into one intensity channel per stain vector.

    Args:
        image: Source image; an alpha component is ignored.
        stain_vectors: Ordered deconvolution basis.
        epsilon: Optical-density floor (see :func:`rgb_to_od`).
        scale: Multiplier applied to the projection before clamping.

    Returns:
        Channels in the order of ``stain_vectors``, same height x width as
        the image, every value in [0, 1].

    Raises:
        InvalidConfigurationError: If no vectors are given, a vector is
            degenerate, or epsilon/scale are out of range.
    """
    _check_vectors(stain_vectors)
    if not (0 < epsilon < 1):
        raise InvalidConfigurationError(f"epsilon must be in (0, 1), got {epsilon}")
    if not (scale > 0 and np.isfinite(scale)):
        raise InvalidConfigurationError(f"scale must be a positive number, got {scale}")

    od = rgb_to_od(image.rgb, epsilon)
    basis = np.stack([v.as_array() for v in stain_vectors], axis=1)  # (3, n_stains)
    projected = np.clip(od @ basis * scale, 0.0, 1.0)

    channels = [
        Channel(name=vector.name, data=projected[..., i])
        for i, vector in enumerate(stain_vectors)
    ]
    logger.debug(
        "Separated %dx%d image into %d channels (%s)",
        image.width, image.height, len(channels),
        ", ".join(v.name for v in stain_vectors),
    )
    return channels
