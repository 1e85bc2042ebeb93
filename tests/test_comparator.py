"""Tests for the image comparator — YIQ pixel diff, cropping, diff rendering."""

import numpy as np
import pytest

from snapwatch.diff.comparator import (
    DIFF_COLOR,
    MAX_YIQ_DELTA,
    color_delta,
    compare,
    count_marked_pixels,
)
from snapwatch.models.raster import Raster
from tests.helpers import checkerboard, make_raster, with_black_pixels


class TestCompare:
    """Tests for compare()."""

    def test_identical_images_have_no_mismatch(self):
        img = checkerboard(16, 16)
        result = compare(img, img)
        assert result.mismatch_percent == 0.0
        assert result.diff_pixels == 0
        assert count_marked_pixels(result.diff_image) == 0

    def test_mismatch_is_percentage_of_compared_area(self):
        base = make_raster(20, 10)
        curr = with_black_pixels(base, 10)
        result = compare(base, curr)
        assert result.diff_pixels == 10
        assert result.mismatch_percent == pytest.approx(5.0)

    def test_entirely_different_images(self):
        result = compare(make_raster(4, 4, (255, 255, 255, 255)), make_raster(4, 4, (0, 0, 0, 255)))
        assert result.mismatch_percent == pytest.approx(100.0)

    def test_diff_image_marks_changed_pixels(self):
        base = make_raster(20, 10)
        curr = with_black_pixels(base, 7)
        result = compare(base, curr)
        assert result.diff_image.size == (20, 10)
        assert count_marked_pixels(result.diff_image) == 7
        arr = result.diff_image.to_array()
        assert tuple(arr[0, 0]) == DIFF_COLOR
        assert arr[9, 19, 0] == arr[9, 19, 1] == arr[9, 19, 2]

    def test_different_sizes_are_cropped_top_left(self):
        base = make_raster(20, 10)
        curr_arr = np.full((15, 30, 4), 255, dtype=np.uint8)
        curr_arr[12:, :, :3] = 0  # outside the overlap
        curr_arr[:, 25:, :3] = 0  # outside the overlap
        result = compare(base, Raster.from_array(curr_arr))
        assert (result.width, result.height) == (20, 10)
        assert result.mismatch_percent == 0.0

    def test_zero_area_is_not_comparable(self):
        result = compare(make_raster(0, 10), make_raster(20, 10))
        assert result.comparable is False
        assert result.mismatch_percent == 0.0
        assert result.total_pixels == 0

    def test_small_colour_shift_below_threshold_is_ignored(self):
        base = make_raster(8, 8, (200, 200, 200, 255))
        curr = make_raster(8, 8, (202, 202, 202, 255))
        assert compare(base, curr).mismatch_percent == 0.0

    def test_zero_threshold_flags_any_change(self):
        base = make_raster(8, 8, (200, 200, 200, 255))
        curr = make_raster(8, 8, (202, 202, 202, 255))
        assert compare(base, curr, threshold=0.0).mismatch_percent == pytest.approx(100.0)

    def test_transparent_pixels_blend_onto_white(self):
        transparent_black = make_raster(4, 4, (0, 0, 0, 0))
        white = make_raster(4, 4, (255, 255, 255, 255))
        assert compare(transparent_black, white).mismatch_percent == 0.0

    @pytest.mark.parametrize("threshold", [-0.1, 1.5])
    def test_threshold_out_of_range_raises(self, threshold):
        with pytest.raises(ValueError, match="threshold"):
            compare(make_raster(2, 2), make_raster(2, 2), threshold=threshold)


class TestColorDelta:

    def test_black_vs_white_exceeds_default_cutoff(self):
        white = np.full((1, 1, 4), 255, dtype=np.uint8)
        black = np.zeros((1, 1, 4), dtype=np.uint8)
        black[..., 3] = 255
        delta = color_delta(white, black)[0, 0]
        assert delta > MAX_YIQ_DELTA * 0.1 ** 2
        assert delta <= MAX_YIQ_DELTA

    def test_symmetric(self):
        a = checkerboard(4, 4).to_array()
        b = make_raster(4, 4, (30, 120, 200, 255)).to_array()
        assert np.allclose(color_delta(a, b), color_delta(b, a))


class TestCompareProperties:
    """Symmetry and cropping behaviour of the mismatch metric."""

    def test_symmetric_mismatch(self):
        a = checkerboard(30, 20)
        b = with_black_pixels(make_raster(30, 20), 123)
        assert compare(a, b).mismatch_percent == compare(b, a).mismatch_percent

    def test_taller_image_matches_its_cropped_self(self):
        rng = np.random.default_rng(7)
        base = Raster.from_array(rng.integers(0, 256, (100, 100, 4), dtype=np.uint8))
        tall = Raster.from_array(rng.integers(0, 256, (150, 100, 4), dtype=np.uint8))
        cropped = Raster.from_array(tall.to_array()[:100, :100, :])

        full = compare(base, tall)
        same = compare(base, cropped)
        assert full.mismatch_percent == same.mismatch_percent
        assert full.diff_image == same.diff_image
