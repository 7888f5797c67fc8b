"""Image sources and boundary validation.

Callers hand the pipeline either a raw interleaved byte buffer or a numpy
array. Both are converted once, here, into the canonical :class:`Image`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

import numpy as np

from histomorph.core.exceptions import InvalidInputError
from histomorph.core.models import Image

DEFAULT_MIN_WIDTH = 100
DEFAULT_MIN_HEIGHT = 100


@dataclass(frozen=True)
class RawImageSource:
    """Row-major, unpadded interleaved samples with explicit dimensions."""

    width: int
    height: int
    data: bytes = field(repr=False)
    components: int = 3


@dataclass(frozen=True, eq=False)
class ArrayImageSource:
    """A (height, width, 3|4) uint8 array, or a float array in [0, 1]."""

    pixels: np.ndarray = field(repr=False)


ImageSource = Union[RawImageSource, ArrayImageSource, Image]


def _from_raw(source: RawImageSource) -> Image:
    if source.width <= 0 or source.height <= 0:
        raise InvalidInputError(
            f"dimensions must be positive, got {source.width}x{source.height}"
        )
    if source.components not in (3, 4):
        raise InvalidInputError(
            f"components must be 3 or 4, got {source.components}"
        )
    if not isinstance(source.data, (bytes, bytearray, memoryview)):
        raise InvalidInputError(
            f"data must be a byte buffer, got {type(source.data).__name__}"
        )
    try:
        return Image.from_buffer(
            source.width, source.height, source.data, source.components,
        )
    except ValueError as e:
        raise InvalidInputError(str(e)) from e


def _from_array(source: ArrayImageSource) -> Image:
    pixels = np.asarray(source.pixels)
    if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
        raise InvalidInputError(
            f"expected a (height, width, 3|4) array, got shape {pixels.shape}"
        )
    if pixels.size == 0:
        raise InvalidInputError(f"image has no pixels (shape {pixels.shape})")
    if pixels.dtype != np.uint8:
        if np.issubdtype(pixels.dtype, np.floating):
            if not np.all(np.isfinite(pixels)) or pixels.min() < 0 or pixels.max() > 1:
                raise InvalidInputError("float pixel values must lie in [0, 1]")
            pixels = np.rint(pixels * 255.0).astype(np.uint8)
        elif np.issubdtype(pixels.dtype, np.integer):
            if pixels.min() < 0 or pixels.max() > 255:
                raise InvalidInputError("integer pixel values must lie in [0, 255]")
            pixels = pixels.astype(np.uint8)
        else:
            raise InvalidInputError(f"unsupported pixel dtype {pixels.dtype}")
    height, width, components = pixels.shape
    return Image(width=width, height=height, components=components, pixels=pixels)


def load_image(
    source: ImageSource,
    min_width: int = DEFAULT_MIN_WIDTH,
    min_height: int = DEFAULT_MIN_HEIGHT,
) -> Image:
    """Convert an image source to a validated :class:`Image`.

    Args:
        source: Raw buffer, numpy array, or an existing Image.
        min_width: Smallest accepted width in pixels.
        min_height: Smallest accepted height in pixels.

    Returns:
        The canonical Image.

    Raises:
        InvalidInputError: On dimension/buffer mismatches, unsupported
            layouts, or images below the minimum resolution.
    """
    if isinstance(source, Image):
        image = source
    elif isinstance(source, RawImageSource):
        image = _from_raw(source)
    elif isinstance(source, ArrayImageSource):
        image = _from_array(source)
    else:
        raise InvalidInputError(
            f"unsupported image source type {type(source).__name__}"
        )

    if image.width < min_width or image.height < min_height:
        raise InvalidInputError(
            f"{image.width}x{image.height} is below the minimum "
            f"resolution {min_width}x{min_height}"
        )
    return image
