"""
Randomization primitives for null models.

Pattern perturbations used by the reconstruction algorithms:
- relocate_point: move one random point to a uniform location in the window
- swap_marks: exchange the marks of two random points

Null models for rasters and marks:
- torus_shift / translate_raster: shift raster content with wrap-around
- random_walk_marks: locally shuffle marks between neighbouring points

Every function takes an explicit ``numpy.random.Generator``; none of them
touches global random state or modifies its input.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np
from scipy.spatial import cKDTree

from pyshar.spatial.pattern import Pattern


def _default_rng(rng: Optional[np.random.Generator]) -> np.random.Generator:
    return rng if rng is not None else np.random.default_rng()


def propose_location(pattern: Pattern, rng: np.random.Generator) -> Tuple[int, np.ndarray]:
    """Pick a random point index and a uniform new location in the window."""
    if pattern.n_points == 0:
        raise ValueError("Cannot relocate a point of an empty pattern")
    index = int(rng.integers(pattern.n_points))
    return index, pattern.window.random_points(1, rng)[0]


def relocate_point(pattern: Pattern, rng: Optional[np.random.Generator] = None) -> Tuple[Pattern, int]:
    """Move one randomly chosen point to a uniformly random location.

    Parameters
    ----------
    pattern : Pattern
        Current pattern
    rng : np.random.Generator, optional
        Random stream

    Returns
    -------
    tuple
        (new pattern, index of the moved point)
    """
    rng = _default_rng(rng)
    index, xy = propose_location(pattern, rng)
    return pattern.with_point(index, xy), index


def propose_swap(pattern: Pattern, rng: np.random.Generator) -> Tuple[int, int]:
    """Pick two distinct point indices."""
    if pattern.n_points < 2:
        raise ValueError("At least 2 points are needed to swap marks")
    a, b = rng.choice(pattern.n_points, size=2, replace=False)
    return int(a), int(b)


def swap_marks(pattern: Pattern, rng: Optional[np.random.Generator] = None) -> Tuple[Pattern, Tuple[int, int]]:
    """Exchange the marks of two randomly chosen points.

    Returns
    -------
    tuple
        (new pattern, (a, b) indices of the swapped points)
    """
    if not pattern.is_marked:
        raise ValueError("Pattern has no marks to swap")
    rng = _default_rng(rng)
    a, b = propose_swap(pattern, rng)
    marks = pattern.marks.copy()
    marks[a], marks[b] = pattern.marks[b], pattern.marks[a]
    return pattern.with_marks(marks), (a, b)


def torus_shift(
    raster: np.ndarray,
    dx: Optional[int] = None,
    dy: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Shift raster content with wrap-around at the borders.

    Parameters
    ----------
    raster : np.ndarray
        2D raster [n_rows, n_cols]
    dx : int, optional
        Shift in columns; uniform over the raster width if None
    dy : int, optional
        Shift in rows; uniform over the raster height if None
    rng : np.random.Generator, optional
        Random stream for omitted offsets

    Returns
    -------
    np.ndarray
        Shifted copy of the raster

    Examples
    --------
    >>> torus_shift(np.array([[1, 2, 3], [4, 5, 6]]), dx=1, dy=0)
    array([[3, 1, 2],
           [6, 4, 5]])
    """
    raster = np.asarray(raster)
    if raster.ndim != 2:
        raise ValueError(f"raster must be 2D, got {raster.ndim}D")
    if dx is None or dy is None:
        rng = _default_rng(rng)
        if dx is None:
            dx = int(rng.integers(raster.shape[1]))
        if dy is None:
            dy = int(rng.integers(raster.shape[0]))
    return np.roll(raster, shift=(int(dy), int(dx)), axis=(0, 1))


def translate_raster(
    raster: np.ndarray,
    steps_x: Optional[np.ndarray] = None,
    steps_y: Optional[np.ndarray] = None,
) -> List[np.ndarray]:
    """All torus translations of a raster.

    Parameters
    ----------
    raster : np.ndarray
        2D raster [n_rows, n_cols]
    steps_x, steps_y : array-like, optional
        Column and row shifts to combine; all shifts of the raster extent
        if None

    Returns
    -------
    list of np.ndarray
        One raster per (dx, dy) combination, the identity excluded
    """
    raster = np.asarray(raster)
    if raster.ndim != 2:
        raise ValueError(f"raster must be 2D, got {raster.ndim}D")
    steps_x = np.arange(raster.shape[1]) if steps_x is None else np.asarray(steps_x, dtype=int)
    steps_y = np.arange(raster.shape[0]) if steps_y is None else np.asarray(steps_y, dtype=int)

    translated = []
    for dy in steps_y:
        for dx in steps_x:
            if dx % raster.shape[1] == 0 and dy % raster.shape[0] == 0:
                continue
            translated.append(torus_shift(raster, dx=dx, dy=dy))
    return translated


def random_walk_marks(
    pattern: Pattern,
    marks=None,
    step_count: int = 1,
    rng: Optional[np.random.Generator] = None,
    n_neighbours: int = 4,
) -> np.ndarray:
    """Randomize marks by a random walk of local swaps.

    Every step picks a random point and swaps its mark with the mark of one
    of its ``n_neighbours`` nearest neighbours. Many steps approach a random
    permutation; few steps keep the marks spatially structured.

    Parameters
    ----------
    pattern : Pattern
        Point locations
    marks : array-like, optional
        Marks to walk; defaults to the marks of the pattern
    step_count : int
        Number of swaps
    rng : np.random.Generator, optional
        Random stream
    n_neighbours : int
        Neighbourhood size of a swap

    Returns
    -------
    np.ndarray
        Randomized marks [n_points]
    """
    marks = np.array(pattern.marks if marks is None else marks)
    if marks.shape != (pattern.n_points,):
        raise ValueError(
            f"marks length ({marks.size}) != number of points ({pattern.n_points})"
        )
    if step_count < 0:
        raise ValueError(f"step_count must be non-negative, got {step_count}")
    if pattern.n_points < 2 or step_count == 0:
        return marks

    rng = _default_rng(rng)
    k = min(n_neighbours, pattern.n_points - 1)
    _, neighbours = cKDTree(pattern.coords).query(pattern.coords, k=k + 1)
    neighbours = np.asarray(neighbours).reshape(pattern.n_points, k + 1)[:, 1:]

    starts = rng.integers(pattern.n_points, size=step_count)
    choices = rng.integers(k, size=step_count)
    for a, c in zip(starts, choices):
        b = neighbours[a, c]
        marks[a], marks[b] = marks[b], marks[a]
    return marks
