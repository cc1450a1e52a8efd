"""
Tests for randomization primitives.
"""

import numpy as np
import pytest

from pyshar.spatial import (
    random_walk_marks,
    relocate_point,
    swap_marks,
    torus_shift,
    translate_raster,
)


class TestRelocatePoint:
    """Test single point relocation."""

    def test_moves_one_point(self, csr_pattern, rng):
        """Exactly one point moves, and stays in the window."""
        moved, index = relocate_point(csr_pattern, rng)

        assert moved.n_points == csr_pattern.n_points
        changed = np.any(moved.coords != csr_pattern.coords, axis=1)
        assert changed.sum() == 1
        assert changed[index]
        assert moved.window.contains(moved.x[index], moved.y[index])

    def test_input_unchanged(self, csr_pattern, rng):
        """The input pattern is not modified."""
        before = csr_pattern.coords.copy()
        relocate_point(csr_pattern, rng)
        np.testing.assert_array_equal(csr_pattern.coords, before)

    def test_reproducible(self, csr_pattern):
        """Same stream, same proposal."""
        a, index_a = relocate_point(csr_pattern, np.random.default_rng(5))
        b, index_b = relocate_point(csr_pattern, np.random.default_rng(5))
        assert index_a == index_b
        np.testing.assert_array_equal(a.coords, b.coords)


class TestSwapMarks:
    """Test mark swaps."""

    def test_swaps_two_marks(self, marked_pattern, rng):
        """Marks of two points are exchanged, locations are kept."""
        swapped, (a, b) = swap_marks(marked_pattern, rng)

        assert a != b
        assert swapped.marks[a] == marked_pattern.marks[b]
        assert swapped.marks[b] == marked_pattern.marks[a]
        np.testing.assert_array_equal(swapped.coords, marked_pattern.coords)
        np.testing.assert_array_equal(np.sort(swapped.marks), np.sort(marked_pattern.marks))

    def test_unmarked(self, csr_pattern, rng):
        """Unmarked patterns cannot swap marks."""
        with pytest.raises(ValueError, match="no marks"):
            swap_marks(csr_pattern, rng)


class TestTorusShift:
    """Test torus translation of rasters."""

    def test_explicit_shift(self):
        """Content wraps around the borders."""
        raster = np.array([[1, 2, 3], [4, 5, 6]])

        np.testing.assert_array_equal(torus_shift(raster, dx=1, dy=0), [[3, 1, 2], [6, 4, 5]])
        np.testing.assert_array_equal(torus_shift(raster, dx=0, dy=1), [[4, 5, 6], [1, 2, 3]])
        np.testing.assert_array_equal(torus_shift(raster, dx=3, dy=2), raster)

    def test_random_shift(self, rng):
        """Random shifts keep the raster values."""
        raster = np.arange(20).reshape(4, 5)
        shifted = torus_shift(raster, rng=rng)

        assert shifted.shape == raster.shape
        np.testing.assert_array_equal(np.sort(shifted, axis=None), np.sort(raster, axis=None))

    def test_not_2d(self):
        """Only 2D rasters can be shifted."""
        with pytest.raises(ValueError, match="2D"):
            torus_shift(np.arange(5), dx=1, dy=1)

    def test_translate_raster(self):
        """All translations except the identity."""
        raster = np.arange(6).reshape(2, 3)
        translated = translate_raster(raster)

        assert len(translated) == 2 * 3 - 1
        assert not any(np.array_equal(t, raster) for t in translated)
        unique = {t.tobytes() for t in translated}
        assert len(unique) == 5

    def test_translate_raster_steps(self):
        """Restricted steps combine x and y shifts."""
        raster = np.arange(16).reshape(4, 4)
        translated = translate_raster(raster, steps_x=[0, 1], steps_y=[0, 2])
        assert len(translated) == 3


class TestRandomWalkMarks:
    """Test local mark randomization."""

    def test_preserves_marks(self, marked_pattern, rng):
        """Swaps permute the marks."""
        marks = random_walk_marks(marked_pattern, step_count=200, rng=rng)

        np.testing.assert_array_equal(np.sort(marks), np.sort(marked_pattern.marks))
        assert not np.array_equal(marks, marked_pattern.marks)

    def test_zero_steps(self, marked_pattern, rng):
        """Zero steps keep the marks."""
        marks = random_walk_marks(marked_pattern, step_count=0, rng=rng)
        np.testing.assert_array_equal(marks, marked_pattern.marks)

    def test_external_marks(self, csr_pattern, rng):
        """Marks can be passed for an unmarked pattern."""
        marks = random_walk_marks(csr_pattern, marks=np.arange(csr_pattern.n_points), step_count=10, rng=rng)
        assert sorted(marks.tolist()) == list(range(csr_pattern.n_points))

    def test_invalid_input(self, csr_pattern, rng):
        """Wrong mark count and negative steps are rejected."""
        with pytest.raises(ValueError, match="marks length"):
            random_walk_marks(csr_pattern, marks=np.arange(3), rng=rng)

        with pytest.raises(ValueError, match="non-negative"):
            random_walk_marks(csr_pattern, marks=np.arange(csr_pattern.n_points), step_count=-1, rng=rng)
