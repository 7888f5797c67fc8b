"""Tests for the built-in descriptors and DescriptorRegistry."""

from __future__ import annotations

import numpy as np
import pytest

from histomorph.core.config import FeatureParams
from histomorph.measure.descriptors import (
    DescriptorRegistry,
    Sample,
    area,
    boundary_mask,
    convex_complexity,
    cv_intensity,
    edge_density,
    foreground_fraction,
    mean_intensity,
    mitotic,
    perimeter,
    radial_distances,
    roundness,
    std_intensity,
)


def _sample(mask: np.ndarray, intensities: np.ndarray | None = None,
            shape_mask: np.ndarray | None = None, **params) -> Sample:
    if intensities is None:
        intensities = mask.astype(np.float64)
    ys, xs = np.nonzero(mask if shape_mask is None else shape_mask)
    center = (float(ys.mean()), float(xs.mean())) if len(ys) else (0.0, 0.0)
    return Sample(
        intensities=intensities,
        mask=mask,
        shape_mask=mask if shape_mask is None else shape_mask,
        center=center,
        params=FeatureParams(**params),
    )


class TestBoundary:
    def test_square_boundary(self) -> None:
        mask = np.zeros((7, 7), dtype=bool)
        mask[1:6, 1:6] = True  # 5x5
        # 25 pixels, 3x3 interior
        assert boundary_mask(mask).sum() == 16

    def test_array_edge_counts_as_outside(self) -> None:
        mask = np.ones((3, 3), dtype=bool)
        assert boundary_mask(mask).sum() == 8


class TestShapeDescriptors:
    def test_square(self) -> None:
        mask = np.zeros((12, 12), dtype=bool)
        mask[1:11, 1:11] = True  # 10x10
        s = _sample(mask)
        assert area(s) == 100.0
        assert perimeter(s) == 36.0
        assert roundness(s) == pytest.approx(min(4 * np.pi * 100 / 36 ** 2, 1.0))
        assert convex_complexity(s) == pytest.approx(0.0, abs=1e-9)

    def test_disk_roundness_near_one(self, make_disk) -> None:
        mask = make_disk((41, 41), 20, 20, 15)
        s = _sample(mask)
        assert roundness(s) >= 0.9
        assert roundness(s) <= 1.0

    def test_plus_less_round_than_disk(self, make_disk, make_plus) -> None:
        # Radius-7 disk and a 5-wide plus with arm 8 both cover 145 px
        disk = _sample(make_disk((41, 41), 20, 20, 7))
        plus = _sample(make_plus((41, 41), 20, 20, arm=8, half_width=2))
        assert abs(area(plus) - area(disk)) <= 5
        assert roundness(plus) < roundness(disk)
        assert roundness(plus) < 0.75
        assert convex_complexity(plus) > convex_complexity(disk)

    def test_undefined_below_min_shape_pixels(self) -> None:
        mask = np.zeros((5, 5), dtype=bool)
        mask[1:4, 1:4] = True  # 9 px
        s = _sample(mask, min_shape_pixels=10)
        assert perimeter(s) is None
        assert roundness(s) is None
        assert convex_complexity(s) is None
        assert area(s) == 9.0

    def test_roundness_clamped_to_unit_interval(self) -> None:
        mask = np.zeros((6, 6), dtype=bool)
        mask[1:5, 1:5] = True  # 16 px, all but 4 on the boundary
        value = roundness(_sample(mask))
        assert 0.0 <= value <= 1.0


class TestRadialDistances:
    def test_disk_distances_close_to_radius(self, make_disk) -> None:
        mask = make_disk((61, 61), 30, 30, 20)
        distances = radial_distances(mask, (30.0, 30.0), 10.0)
        assert len(distances) == 36
        assert np.all(np.abs(distances - 20) <= 1.5)

    def test_rays_leave_array(self) -> None:
        mask = np.ones((5, 5), dtype=bool)
        distances = radial_distances(mask, (2.0, 2.0), 90.0)
        assert distances.tolist() == [3.0, 3.0, 3.0, 3.0]


class TestIntensityDescriptors:
    @pytest.fixture
    def sample(self) -> Sample:
        intensities = np.array([
            [0.0, 0.0, 0.0, 0.0],
            [0.0, 0.2, 0.4, 0.0],
            [0.0, 0.6, 0.8, 0.0],
            [0.0, 0.0, 0.0, 0.0],
        ])
        mask = intensities > 0
        return _sample(mask, intensities)

    def test_mean(self, sample: Sample) -> None:
        assert mean_intensity(sample) == pytest.approx(0.5)

    def test_std(self, sample: Sample) -> None:
        assert std_intensity(sample) == pytest.approx(float(np.std([0.2, 0.4, 0.6, 0.8])))

    def test_cv(self, sample: Sample) -> None:
        assert cv_intensity(sample) == pytest.approx(std_intensity(sample) / 0.5)

    def test_cv_zero_mean(self) -> None:
        mask = np.ones((3, 3), dtype=bool)
        assert cv_intensity(_sample(mask, np.zeros((3, 3)))) == 0.0


class TestEdgeDensity:
    def test_uniform_interior_has_no_edges(self) -> None:
        mask = np.ones((4, 4), dtype=bool)
        assert edge_density(_sample(mask, np.full((4, 4), 0.7))) == 0.0

    def test_isolated_pixel_all_edges(self) -> None:
        mask = np.zeros((3, 3), dtype=bool)
        mask[1, 1] = True
        intensities = np.zeros((3, 3))
        intensities[1, 1] = 1.0
        assert edge_density(_sample(mask, intensities)) == 1.0

    def test_outline_pairs_counted(self) -> None:
        mask = np.zeros((4, 4), dtype=bool)
        mask[1:3, 1:3] = True
        # 4 internal pairs (no edge) + 8 outline pairs (edges)
        assert edge_density(_sample(mask, mask.astype(float))) == pytest.approx(8 / 12)

    def test_delta_is_strict(self) -> None:
        mask = np.zeros((1, 2), dtype=bool)
        mask[0, 0] = True
        intensities = np.array([[0.5, 0.25]])
        assert edge_density(_sample(mask, intensities, edge_delta=0.25)) == 0.0
        assert edge_density(_sample(mask, intensities, edge_delta=0.2)) == 1.0


class TestForegroundFraction:
    def test_fraction(self) -> None:
        window = np.ones((4, 4), dtype=bool)
        shape = np.zeros((4, 4), dtype=bool)
        shape[:2, :] = True
        assert foreground_fraction(_sample(window, shape_mask=shape)) == 0.5


class TestMitotic:
    def test_dense_disk_is_mitotic(self, make_disk) -> None:
        mask = make_disk((25, 25), 12, 12, 10)
        assert mitotic(_sample(mask, mask * 0.9)) == 1.0

    def test_below_intensity_not_mitotic(self, make_disk) -> None:
        mask = make_disk((25, 25), 12, 12, 10)
        assert mitotic(_sample(mask, mask * 0.8)) == 0.0

    def test_thresholds_from_params(self, make_disk) -> None:
        mask = make_disk((25, 25), 12, 12, 10)
        assert mitotic(_sample(mask, mask * 0.8, mitotic_intensity=0.75)) == 1.0

    def test_bright_core_dim_ring_not_mitotic(self, make_disk) -> None:
        core = make_disk((25, 25), 12, 12, 4)
        mask = make_disk((25, 25), 12, 12, 10)
        intensities = np.where(core, 0.95, 0.5) * mask
        assert mitotic(_sample(mask, intensities)) == 0.0

    def test_region_smaller_than_disk(self, make_disk) -> None:
        mask = make_disk((21, 21), 10, 10, 3)
        assert mitotic(_sample(mask, mask * 0.95)) == 0.0


class TestRegistry:
    def test_builtins_present(self) -> None:
        registry = DescriptorRegistry()
        for name in ("area", "perimeter", "roundness", "radial_irregularity",
                     "convex_complexity", "mean_intensity", "std_intensity",
                     "cv_intensity", "edge_density", "foreground_fraction", "mitotic"):
            assert name in registry

    def test_window_and_region_only_names(self) -> None:
        registry = DescriptorRegistry()
        assert "foreground_fraction" not in registry.names()
        assert "foreground_fraction" in registry.names(window=True)
        assert "mitotic" in registry.names()
        assert "mitotic" not in registry.names(window=True)

    def test_register_custom(self) -> None:
        registry = DescriptorRegistry()
        registry.register("double_area", lambda s: 2.0 * area(s))
        mask = np.ones((2, 2), dtype=bool)
        assert registry.compute("double_area", _sample(mask)) == 8.0
        assert registry.names()[-1] == "double_area"

    def test_register_empty_name(self) -> None:
        with pytest.raises(ValueError, match="empty"):
            DescriptorRegistry().register("", area)

    def test_unknown_descriptor(self) -> None:
        mask = np.ones((2, 2), dtype=bool)
        with pytest.raises(KeyError, match="nope"):
            DescriptorRegistry().compute("nope", _sample(mask))

    def test_list_sorted(self) -> None:
        names = DescriptorRegistry().list_descriptors()
        assert names == sorted(names)
