"""Tests for FeatureExtractor region and window extraction."""

from __future__ import annotations

import numpy as np
import pytest

from histomorph.core.config import FeatureParams
from histomorph.core.models import Channel
from histomorph.measure import FeatureExtractor, extract_features, extract_window_features
from histomorph.segment import segment


class TestExtractFeatures:
    def test_disk_features(self, make_channel, make_disk) -> None:
        shape = (100, 100)
        channel = make_channel(shape, [make_disk(shape, 50, 50, 12)], value=0.8)
        (region,) = segment(channel, 0.5, 20, 5000)
        fv = extract_features(region)
        assert fv.source == "region:0"
        assert fv["area"] == float(region.area)
        assert fv["roundness"] >= 0.9
        assert fv["radial_irregularity"] < 0.1
        assert fv["convex_complexity"] < 0.1
        assert fv["mean_intensity"] == pytest.approx(0.8)
        assert fv["std_intensity"] == pytest.approx(0.0)
        assert fv["cv_intensity"] == pytest.approx(0.0)
        assert 0.0 < fv["edge_density"] < 1.0
        assert "foreground_fraction" not in fv
        assert fv["mitotic"] == 0.0

    def test_saturated_nucleus_flagged_mitotic(self, make_channel, make_disk) -> None:
        shape = (100, 100)
        channel = make_channel(shape, [make_disk(shape, 50, 50, 10)], value=0.95)
        (region,) = segment(channel, 0.5, 20, 5000)
        assert extract_features(region)["mitotic"] == 1.0

    def test_small_bright_region_not_mitotic(self, make_channel, make_disk) -> None:
        # The mitotic disk reaches past a radius-3 region into background
        shape = (60, 60)
        channel = make_channel(shape, [make_disk(shape, 30, 30, 3)], value=0.95)
        (region,) = segment(channel, 0.5, 1, 5000)
        assert extract_features(region)["mitotic"] == 0.0

    def test_plus_more_irregular_than_disk(self, make_channel, make_disk, make_plus) -> None:
        shape = (100, 100)
        channel = make_channel(
            shape, [make_disk(shape, 30, 30, 12), make_plus(shape, 60, 70, arm=14)],
        )
        disk_region, plus_region = segment(channel, 0.5, 20, 5000)
        disk_fv = extract_features(disk_region)
        plus_fv = extract_features(plus_region)
        assert plus_fv["roundness"] < disk_fv["roundness"]
        assert plus_fv["radial_irregularity"] > disk_fv["radial_irregularity"]
        assert plus_fv["convex_complexity"] > disk_fv["convex_complexity"]

    def test_small_region_shape_undefined(self, make_channel) -> None:
        shape = (20, 20)
        mask = np.zeros(shape, dtype=bool)
        mask[5:8, 5:8] = True  # 9 px
        (region,) = segment(make_channel(shape, [mask]), 0.5, 1, 100)
        fv = extract_features(region, params=FeatureParams(min_shape_pixels=10))
        assert fv["area"] == 9.0
        for name in ("perimeter", "roundness", "radial_irregularity", "convex_complexity"):
            assert fv[name] is None
        assert fv["mean_intensity"] is not None

    def test_region_at_image_corner(self, make_channel) -> None:
        shape = (30, 30)
        mask = np.zeros(shape, dtype=bool)
        mask[0:6, 0:6] = True
        (region,) = segment(make_channel(shape, [mask]), 0.5, 1, 100)
        fv = extract_features(region)
        assert fv["perimeter"] == 20.0

    def test_other_channel(self, make_channel, make_disk) -> None:
        shape = (60, 60)
        disk = make_disk(shape, 30, 30, 8)
        primary = make_channel(shape, [disk])
        secondary = make_channel(shape, [disk], value=0.3, name="eosin")
        (region,) = segment(primary, 0.5, 1, 5000)
        assert extract_features(region, secondary)["mean_intensity"] == pytest.approx(0.3)

    def test_channel_shape_mismatch(self, make_channel, make_disk) -> None:
        shape = (60, 60)
        (region,) = segment(make_channel(shape, [make_disk(shape, 30, 30, 8)]), 0.5, 1, 5000)
        with pytest.raises(ValueError, match="does not match"):
            extract_features(region, make_channel((50, 50)))

    def test_deterministic(self, make_channel, make_plus) -> None:
        shape = (60, 60)
        (region,) = segment(make_channel(shape, [make_plus(shape, 30, 30, arm=10)]), 0.5, 1, 5000)
        assert extract_features(region).to_dict() == extract_features(region).to_dict()


class TestExtractAll:
    def test_threaded_preserves_order(self, make_channel, make_disk) -> None:
        shape = (120, 120)
        masks = [
            make_disk(shape, r, c, rad)
            for r, c, rad in ((15, 15, 5), (15, 60, 9), (60, 30, 7), (90, 90, 12))
        ]
        channel = make_channel(shape, masks)
        regions = segment(channel, 0.5, 1, 5000)
        extractor = FeatureExtractor()
        sequential = extractor.extract_all(regions)
        threaded = extractor.extract_all(regions, max_workers=4)
        assert [v.source for v in threaded] == [f"region:{i}" for i in range(4)]
        assert [v.to_dict() for v in threaded] == [v.to_dict() for v in sequential]


class TestWindows:
    def test_window_features(self, make_channel, make_disk) -> None:
        shape = (100, 100)
        blob = make_disk(shape, 50, 50, 10)
        channel = make_channel(shape, [blob])
        fv = extract_window_features(channel, 50, 50, radius=20, min_intensity=0.5)
        window_area = fv["area"]
        assert window_area == pytest.approx(np.pi * 400, rel=0.05)
        assert fv["foreground_fraction"] == pytest.approx(blob.sum() / window_area)
        assert fv["roundness"] >= 0.9
        assert fv.source == "window:50,50"
        assert "mitotic" not in fv

    def test_window_clipped_at_border(self, make_channel) -> None:
        channel = make_channel((50, 50))
        fv = extract_window_features(channel, 0, 0, radius=10, min_intensity=0.5)
        assert fv["area"] < np.pi * 100 / 2
        assert fv["foreground_fraction"] == 0.0
        assert fv["roundness"] is None

    def test_bad_window(self, make_channel) -> None:
        channel = make_channel((50, 50))
        with pytest.raises(ValueError, match="radius"):
            extract_window_features(channel, 10, 10, radius=0, min_intensity=0.5)
        with pytest.raises(ValueError, match="outside"):
            extract_window_features(channel, 60, 10, radius=5, min_intensity=0.5)

    def test_sample_grid_tiles_full_windows(self) -> None:
        channel = Channel("h", np.zeros((200, 200)))
        windows = FeatureExtractor().sample_grid(channel, radius=25, min_intensity=0.5)
        assert len(windows) == 16
        assert windows[0].source == "window:25,25"
        assert windows[-1].source == "window:175,175"

    def test_sample_grid_too_small(self) -> None:
        channel = Channel("h", np.zeros((30, 30)))
        assert FeatureExtractor().sample_grid(channel, radius=25, min_intensity=0.5) == []
