"""Shared test fixtures for histomorph."""

from __future__ import annotations

from typing import Callable, Sequence

import numpy as np
import pytest
from skimage.draw import disk

from histomorph.core.models import Channel

# Hematoxylin-like nuclear stain on a white (unstained) background.
NUCLEUS_RGB = (80, 40, 120)
BACKGROUND_RGB = (255, 255, 255)

# (row, col, radius) of three well-separated nuclei in a 200x200 image.
THREE_NUCLEI = ((50, 50, 10), (60, 150, 10), (150, 100, 10))


def paint_rgb(
    shape: tuple[int, int],
    masks: Sequence[np.ndarray],
    color: tuple[int, int, int] = NUCLEUS_RGB,
    background: tuple[int, int, int] = BACKGROUND_RGB,
) -> np.ndarray:
    """uint8 RGB image with every mask filled in ``color``."""
    rgb = np.empty((*shape, 3), dtype=np.uint8)
    rgb[...] = background
    for mask in masks:
        rgb[mask] = color
    return rgb


def disk_mask(shape: tuple[int, int], row: float, col: float, radius: float) -> np.ndarray:
    mask = np.zeros(shape, dtype=bool)
    rr, cc = disk((row, col), radius, shape=shape)
    mask[rr, cc] = True
    return mask


def plus_mask(
    shape: tuple[int, int], row: int, col: int, arm: int, half_width: int = 1,
) -> np.ndarray:
    """A '+' shaped mask: two perpendicular bars crossing at (row, col)."""
    mask = np.zeros(shape, dtype=bool)
    mask[row - arm:row + arm + 1, col - half_width:col + half_width + 1] = True
    mask[row - half_width:row + half_width + 1, col - arm:col + arm + 1] = True
    return mask


@pytest.fixture
def make_channel() -> Callable[..., Channel]:
    """Factory for a channel holding ``value`` inside the given masks."""

    def _make(
        shape: tuple[int, int],
        masks: Sequence[np.ndarray] = (),
        value: float = 0.9,
        name: str = "hematoxylin",
    ) -> Channel:
        data = np.zeros(shape, dtype=np.float64)
        for mask in masks:
            data[mask] = value
        return Channel(name=name, data=data)

    return _make


@pytest.fixture
def nuclei_rgb() -> np.ndarray:
    """200x200 H&E-like image with three round nuclei of radius 10."""
    shape = (200, 200)
    return paint_rgb(shape, [disk_mask(shape, r, c, rad) for r, c, rad in THREE_NUCLEI])


@pytest.fixture
def white_rgb() -> np.ndarray:
    return paint_rgb((200, 200), [])


@pytest.fixture
def black_rgb() -> np.ndarray:
    return np.zeros((200, 200, 3), dtype=np.uint8)


@pytest.fixture
def make_disk() -> Callable[..., np.ndarray]:
    return disk_mask


@pytest.fixture
def make_plus() -> Callable[..., np.ndarray]:
    return plus_mask


@pytest.fixture
def make_rgb() -> Callable[..., np.ndarray]:
    return paint_rgb
