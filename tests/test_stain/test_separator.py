"""Tests for stain separation and channel preprocessing."""

from __future__ import annotations

import numpy as np
import pytest

from histomorph.core.config import PreprocessingParams
from histomorph.core.defaults import DEFAULT_STAIN_VECTORS, EOSIN, HEMATOXYLIN
from histomorph.core.exceptions import InvalidConfigurationError
from histomorph.core.image import ArrayImageSource, load_image
from histomorph.core.models import Channel, StainVector
from histomorph.stain import median_filter, preprocess, rgb_to_od, separate, stretch_contrast


class TestRgbToOd:
    def test_white_is_zero(self) -> None:
        od = rgb_to_od(np.array([[255, 255, 255]], dtype=np.uint8))
        assert np.allclose(od, 0.0)

    def test_black_is_finite(self) -> None:
        od = rgb_to_od(np.array([[0, 0, 0]], dtype=np.uint8), epsilon=1e-6)
        assert np.all(np.isfinite(od))
        assert np.allclose(od, 6.0)

    def test_known_value(self) -> None:
        od = rgb_to_od(np.array([25.5]))
        assert od[0] == pytest.approx(1.0)


class TestSeparate:
    def test_white_image_all_zero(self, white_rgb: np.ndarray) -> None:
        channels = separate(load_image(ArrayImageSource(white_rgb)), DEFAULT_STAIN_VECTORS)
        assert [c.name for c in channels] == ["hematoxylin", "eosin", "residual"]
        for ch in channels:
            assert ch.data.shape == (200, 200)
            assert ch.data.max() == 0.0

    def test_black_image_clamped(self, black_rgb: np.ndarray) -> None:
        channels = separate(load_image(ArrayImageSource(black_rgb)), DEFAULT_STAIN_VECTORS)
        for ch in channels:
            assert not np.isnan(ch.data).any()
            assert ch.data.min() == 1.0

    def test_values_within_unit_interval(self) -> None:
        rng = np.random.default_rng(0)
        rgb = rng.integers(0, 256, size=(120, 130, 3), dtype=np.uint8)
        channels = separate(load_image(ArrayImageSource(rgb)), DEFAULT_STAIN_VECTORS)
        for ch in channels:
            assert ch.data.min() >= 0.0
            assert ch.data.max() <= 1.0
            assert (ch.height, ch.width) == (120, 130)

    def test_nuclear_stain_dominates_hematoxylin(self, nuclei_rgb: np.ndarray) -> None:
        hema, _, _ = separate(load_image(ArrayImageSource(nuclei_rgb)), DEFAULT_STAIN_VECTORS)
        assert hema.data[50, 50] > 0.5
        assert hema.data[0, 0] == 0.0

    def test_scale_multiplies_projection(self, nuclei_rgb: np.ndarray) -> None:
        image = load_image(ArrayImageSource(nuclei_rgb))
        (full,) = separate(image, [EOSIN])
        (half,) = separate(image, [EOSIN], scale=0.5)
        assert half.data[50, 50] == pytest.approx(full.data[50, 50] * 0.5)

    def test_alpha_ignored(self, nuclei_rgb: np.ndarray) -> None:
        rgba = np.concatenate(
            [nuclei_rgb, np.full((200, 200, 1), 17, dtype=np.uint8)], axis=2,
        )
        (with_alpha,) = separate(load_image(ArrayImageSource(rgba)), [HEMATOXYLIN])
        (without,) = separate(load_image(ArrayImageSource(nuclei_rgb)), [HEMATOXYLIN])
        assert np.array_equal(with_alpha.data, without.data)

    def test_deterministic(self, nuclei_rgb: np.ndarray) -> None:
        image = load_image(ArrayImageSource(nuclei_rgb))
        a = separate(image, DEFAULT_STAIN_VECTORS)
        b = separate(image, DEFAULT_STAIN_VECTORS)
        for x, y in zip(a, b):
            assert np.array_equal(x.data, y.data)

    def test_no_vectors(self, white_rgb: np.ndarray) -> None:
        with pytest.raises(InvalidConfigurationError, match="at least one"):
            separate(load_image(ArrayImageSource(white_rgb)), [])

    def test_degenerate_vector(self, white_rgb: np.ndarray) -> None:
        zero = StainVector("zero", 0.0, 0.0, 0.0)
        with pytest.raises(InvalidConfigurationError, match="degenerate"):
            separate(load_image(ArrayImageSource(white_rgb)), [HEMATOXYLIN, zero])

    @pytest.mark.parametrize("kwargs", [{"epsilon": 0.0}, {"scale": -1.0}])
    def test_bad_parameters(self, white_rgb: np.ndarray, kwargs: dict) -> None:
        with pytest.raises(InvalidConfigurationError):
            separate(load_image(ArrayImageSource(white_rgb)), [HEMATOXYLIN], **kwargs)


class TestPreprocess:
    def test_median_removes_speck(self) -> None:
        data = np.zeros((9, 9))
        data[4, 4] = 1.0
        filtered = median_filter(Channel("h", data), 3)
        assert filtered.data.max() == 0.0
        assert filtered.name == "h"

    def test_stretch_contrast(self) -> None:
        data = np.array([[0.2, 0.4], [0.6, 0.2]])
        stretched = stretch_contrast(Channel("h", data))
        assert stretched.data.min() == 0.0
        assert stretched.data.max() == 1.0
        assert stretched.data[0, 1] == pytest.approx(0.5)

    def test_stretch_constant_channel_unchanged(self) -> None:
        ch = Channel("h", np.full((3, 3), 0.3))
        assert stretch_contrast(ch) is ch

    def test_preprocess_disabled_is_identity(self) -> None:
        ch = Channel("h", np.full((3, 3), 0.3))
        assert preprocess([ch], PreprocessingParams()) == [ch]

    def test_preprocess_applies_steps(self) -> None:
        data = np.zeros((9, 9))
        data[2:7, 2:7] = 0.4
        data[0, 0] = 0.9
        (out,) = preprocess(
            [Channel("h", data)],
            PreprocessingParams(median_filter_size=3, contrast_stretch=True),
        )
        assert out.data[0, 0] == 0.0
        assert out.data[4, 4] == 1.0
