"""
Summary functions of spatial point patterns.

Estimators:
- gest: nearest-neighbour distance distribution G(r), Hanisch or uncorrected
- pcf: pair correlation function g(r), translation corrected, divisor d
- kest: Ripley's K-function, uncorrected or translation corrected
- estimate_pcf_fast: g(r) derived from a smoothed uncorrected K-function
- markcorr: mark correlation function kmm(r), isotropic (Ripley) corrected

All estimators sample their function on a radius grid ``r`` (by default
250 values from 0 to the rule-of-thumb maximum radius of the window) and
return a SummaryCurve. Radii without any contributing neighbour or pair are
reported as NaN instead of failing.

PatternSummary and MarkSummary keep the per-pair sums behind these estimators
so that a reconstruction step (one point relocated, or two marks swapped)
updates the curves in O(n * len(r)) instead of recomputing all pairs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np
import pandas as pd
from scipy.interpolate import make_smoothing_spline
from scipy.spatial import cKDTree
from scipy.spatial.distance import cdist

from pyshar.constants import (
    DEFAULT_SPAR,
    EPSILON,
    KERNEL_CHUNK_SIZE,
    N_RADII,
    SPAR_BASE,
    SPAR_RATIO,
    STOYAN_COEFFICIENT,
)
from pyshar.exceptions import InvalidPatternError
from pyshar.spatial.pattern import Pattern
from pyshar.spatial.window import Window

SUMMARY_KINDS = ("G", "pcf", "kmm")


@dataclass(frozen=True, eq=False)
class SummaryCurve:
    """Summary function sampled on a radius grid.

    Attributes
    ----------
    r : np.ndarray
        Radius grid, increasing from 0 [k]
    values : np.ndarray
        Estimated function values, NaN where undefined [k]
    kind : str
        Estimated function: 'G', 'pcf' or 'kmm'
    correction : str
        Edge correction: 'han', 'translate', 'Ripley' or 'none'
    fast : bool
        Whether the curve comes from the fast (uncorrected) estimators
    """

    r: np.ndarray
    values: np.ndarray
    kind: str
    correction: str
    fast: bool = False

    def __post_init__(self):
        """Validate curve data."""
        if self.kind not in SUMMARY_KINDS:
            raise ValueError(f"kind must be one of {SUMMARY_KINDS}, got '{self.kind}'")
        r = np.array(self.r, dtype=float)
        values = np.array(self.values, dtype=float)
        if r.ndim != 1 or r.shape != values.shape:
            raise ValueError(f"r shape {r.shape} != values shape {values.shape}")
        r.setflags(write=False)
        values.setflags(write=False)
        object.__setattr__(self, "r", r)
        object.__setattr__(self, "values", values)

    def __len__(self) -> int:
        return len(self.r)

    def to_frame(self) -> pd.DataFrame:
        """Convert to DataFrame with columns r and the function values."""
        return pd.DataFrame({"r": self.r, self.kind: self.values})


# =============================================================================
# HELPERS
# =============================================================================


def radius_grid(pattern: Pattern, r_length: int = N_RADII) -> np.ndarray:
    """Radius grid from 0 to the recommended maximum radius of the pattern."""
    rmax = pattern.window.rmax(pattern.intensity)
    return np.linspace(0.0, rmax, r_length)


def _check_pattern(pattern: Pattern, marked: bool = False) -> None:
    if not isinstance(pattern, Pattern):
        raise TypeError(f"pattern must be a Pattern, got {type(pattern).__name__}")
    if pattern.n_points < 2:
        raise InvalidPatternError(
            f"At least 2 points are needed to estimate summary functions, "
            f"got {pattern.n_points}"
        )
    if marked and not pattern.has_numeric_marks:
        raise TypeError("Mark correlation requires a pattern with numeric marks")


def _as_radii(pattern: Pattern, r) -> np.ndarray:
    if r is None:
        return radius_grid(pattern)
    r = np.asarray(r, dtype=float)
    if r.ndim != 1 or len(r) < 2:
        raise ValueError("r must be a one-dimensional array with at least 2 values")
    if np.any(r < 0) or np.any(np.diff(r) <= 0):
        raise ValueError("r must be non-negative and strictly increasing")
    return r


def bandwidth(intensity: float, stoyan: float = STOYAN_COEFFICIENT) -> float:
    """Half-width of the Epanechnikov kernel by Stoyan's rule."""
    return stoyan / np.sqrt(intensity)


def _kernel_sums(r: np.ndarray, d: np.ndarray, weights: np.ndarray, h: float) -> np.ndarray:
    """Weighted sums of Epanechnikov kernels centred at the pair distances.

    Returns ``sum_p weights[p] * k_h(r - d[p])`` for every radius, with weights
    of shape [m] (result [k]) or [m, q] (result [k, q]). Pairs are processed
    in blocks to bound memory.
    """
    total = np.zeros((len(r),) + weights.shape[1:])
    for start in range(0, len(d), KERNEL_CHUNK_SIZE):
        stop = start + KERNEL_CHUNK_SIZE
        t = (r[:, None] - d[None, start:stop]) / h
        kernel = np.where(np.abs(t) <= 1.0, 0.75 * (1.0 - t ** 2) / h, 0.0)
        total += kernel @ weights[start:stop]
    return total


def _close_pairs(coords: np.ndarray, max_distance: float):
    """Unordered pairs (i < j) closer than max_distance.

    Returns
    -------
    tuple
        (i, j, delta, d) with delta = coords[i] - coords[j] [m, 2]
    """
    tree = cKDTree(coords)
    pairs = tree.query_pairs(max_distance, output_type="ndarray")
    if len(pairs) == 0:
        empty = np.empty(0, dtype=int)
        return empty, empty, np.empty((0, 2)), np.empty(0)
    i, j = pairs[:, 0], pairs[:, 1]
    delta = coords[i] - coords[j]
    return i, j, delta, np.hypot(delta[:, 0], delta[:, 1])


def _nearest_neighbours(coords: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    distances, indices = cKDTree(coords).query(coords, k=2)
    # Duplicate locations can list the point itself second
    own = indices[:, 1] == np.arange(len(coords))
    indices[own, 1] = indices[own, 0]
    return distances[:, 1], indices[:, 1]


def _count_within(d: np.ndarray, r: np.ndarray) -> np.ndarray:
    """Number of distances d <= r for every radius."""
    return np.searchsorted(np.sort(d), r, side="right")


def _translate_weights(window: Window, delta: np.ndarray, d: np.ndarray) -> np.ndarray:
    # Ordered pairs count twice
    overlap = window.set_covariance(delta[:, 0], delta[:, 1])
    return 2.0 / (np.maximum(d, EPSILON) * np.maximum(overlap, EPSILON))


# =============================================================================
# NEAREST NEIGHBOUR DISTANCE FUNCTION
# =============================================================================


def _gest_uncorrected(nn_dist: np.ndarray, r: np.ndarray) -> np.ndarray:
    return _count_within(nn_dist, r) / len(nn_dist)


def _gest_hanisch(
    nn_dist: np.ndarray, bdist: np.ndarray, window: Window, r: np.ndarray
) -> np.ndarray:
    observed = nn_dist <= bdist
    if not np.any(observed):
        return np.full(len(r), np.nan)

    d = np.sort(nn_dist[observed])
    weights = 1.0 / np.maximum(window.eroded_area(d), EPSILON)
    cumulative = np.cumsum(weights)
    idx = np.searchsorted(d, r, side="right")
    numerator = np.where(idx > 0, cumulative[np.maximum(idx - 1, 0)], 0.0)
    return numerator / cumulative[-1]


def gest(pattern: Pattern, r=None, correction: str = "han") -> SummaryCurve:
    """Estimate the nearest-neighbour distance distribution function G(r).

    Parameters
    ----------
    pattern : Pattern
        Point pattern with at least 2 points
    r : array-like, optional
        Radius grid. Default: ``radius_grid(pattern)``
    correction : str
        'han' for Hanisch's edge correction, 'none' for the plain empirical
        distribution of nearest-neighbour distances

    Returns
    -------
    SummaryCurve
        Curve of kind 'G'; fast mode when uncorrected

    Raises
    ------
    InvalidPatternError
        If the pattern has fewer than 2 points
    """
    _check_pattern(pattern)
    r = _as_radii(pattern, r)
    nn_dist, _ = _nearest_neighbours(pattern.coords)

    if correction == "none":
        values = _gest_uncorrected(nn_dist, r)
    elif correction == "han":
        bdist = pattern.window.boundary_distance(pattern.x, pattern.y)
        values = _gest_hanisch(nn_dist, bdist, pattern.window, r)
    else:
        raise ValueError(f"Unknown correction for Gest: '{correction}'. Use 'han' or 'none'")

    return SummaryCurve(r, values, "G", correction, fast=correction == "none")


# =============================================================================
# PAIR CORRELATION FUNCTION
# =============================================================================


def _pcf_from_sums(sums: np.ndarray, n_points: int, area: float) -> np.ndarray:
    return area ** 2 / (n_points * (n_points - 1)) * sums / (2.0 * np.pi)


def pcf(pattern: Pattern, r=None, stoyan: float = STOYAN_COEFFICIENT) -> SummaryCurve:
    """Estimate the pair correlation function g(r) with edge correction.

    Kernel estimator with translation correction and divisor ``d``:

        g(r) = |W|² / (n (n-1)) · 1 / (2π) · Σ_{i≠j} k(r - d_ij) / (d_ij |W ∩ W_ij|)

    where ``W_ij`` is the window shifted by ``x_i - x_j`` and ``k`` is an
    Epanechnikov kernel of half-width ``stoyan / sqrt(lambda)``.

    Parameters
    ----------
    pattern : Pattern
        Point pattern with at least 2 points
    r : array-like, optional
        Radius grid. Default: ``radius_grid(pattern)``
    stoyan : float
        Bandwidth coefficient

    Returns
    -------
    SummaryCurve
        Curve of kind 'pcf' with 'translate' correction
    """
    _check_pattern(pattern)
    r = _as_radii(pattern, r)
    h = bandwidth(pattern.intensity, stoyan)

    _, _, delta, d = _close_pairs(pattern.coords, r[-1] + h)
    sums = _kernel_sums(r, d, _translate_weights(pattern.window, delta, d), h)
    values = _pcf_from_sums(sums, pattern.n_points, pattern.window.area)

    return SummaryCurve(r, values, "pcf", "translate", fast=False)


def _k_from_counts(counts: np.ndarray, n_points: int, area: float) -> np.ndarray:
    return area * 2.0 * counts / (n_points * (n_points - 1))


def kest(pattern: Pattern, r=None, correction: str = "none") -> np.ndarray:
    """Ripley's K-function evaluated on the radius grid.

    Parameters
    ----------
    pattern : Pattern
        Point pattern with at least 2 points
    r : array-like, optional
        Radius grid. Default: ``radius_grid(pattern)``
    correction : str
        'none' (uncorrected) or 'translate'

    Returns
    -------
    np.ndarray
        K(r) [len(r)]
    """
    _check_pattern(pattern)
    r = _as_radii(pattern, r)
    _, _, delta, d = _close_pairs(pattern.coords, r[-1])
    n_points, area = pattern.n_points, pattern.window.area

    if correction == "none":
        return _k_from_counts(_count_within(d, r), n_points, area)
    if correction != "translate":
        raise ValueError(f"Unknown correction for Kest: '{correction}'. Use 'none' or 'translate'")

    order = np.argsort(d)
    overlap = pattern.window.set_covariance(delta[order, 0], delta[order, 1])
    cumulative = np.concatenate([[0.0], np.cumsum(2.0 / np.maximum(overlap, EPSILON))])
    return area ** 2 / (n_points * (n_points - 1)) * cumulative[np.searchsorted(d[order], r, side="right")]


def _spar_to_lambda(spar: float) -> float:
    # R smooth.spline scale: lambda = ratio * 256^(3 spar - 1)
    return SPAR_RATIO * SPAR_BASE ** (3.0 * spar - 1.0)


def _pcf_from_k(r: np.ndarray, k: np.ndarray, spar: float) -> np.ndarray:
    """Pair correlation function as derivative of a smoothed K-function.

    Smooths ``J(r) = K(r) / (π r²)`` and uses ``g = J + r J' / 2``.
    """
    j = np.full(len(r), np.nan)
    positive = r > 0
    j[positive] = k[positive] / (np.pi * r[positive] ** 2)

    usable = positive & np.isfinite(j)
    if usable.sum() < 5:
        return np.full(len(r), np.nan)

    scale = r[-1]
    spline = make_smoothing_spline(r[usable] / scale, j[usable], lam=_spar_to_lambda(spar))
    j_hat = spline(r / scale)
    j_prime = spline.derivative()(r / scale) / scale
    return j_hat + r * j_prime / 2.0


def estimate_pcf_fast(pattern: Pattern, r=None, spar: float = DEFAULT_SPAR) -> SummaryCurve:
    """Fast estimate of the pair correlation function.

    The pair correlation function is the derivative of Ripley's K-function
    scaled by 2πr. The K-function is estimated without edge correction and
    smoothed by a spline before differentiation, which avoids the per-pair
    edge correction weights of ``pcf`` and is the practical choice for
    large patterns.

    Parameters
    ----------
    pattern : Pattern
        Point pattern with at least 2 points
    r : array-like, optional
        Radius grid. Default: ``radius_grid(pattern)``
    spar : float
        Smoothing parameter of the spline (R ``smooth.spline`` scale)

    Returns
    -------
    SummaryCurve
        Curve of kind 'pcf' without correction, fast mode

    Examples
    --------
    >>> curve = estimate_pcf_fast(pattern, spar=0.5)
    >>> curve.to_frame().head()
    """
    _check_pattern(pattern)
    r = _as_radii(pattern, r)
    k = kest(pattern, r)
    return SummaryCurve(r, _pcf_from_k(r, k, spar), "pcf", "none", fast=True)


# =============================================================================
# MARK CORRELATION FUNCTION
# =============================================================================


def _markcorr_from_sums(numerator: np.ndarray, denominator: np.ndarray, mean_mark: float) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(denominator > 0, numerator / denominator, np.nan)
        return ratio / mean_mark ** 2


def _isotropic_pair_weights(window: Window, coords: np.ndarray, i, j, d) -> np.ndarray:
    # Ordered pairs: circle around x_i through x_j and vice versa
    return window.isotropic_weights(coords[i, 0], coords[i, 1], d) + window.isotropic_weights(
        coords[j, 0], coords[j, 1], d
    )


def markcorr(pattern: Pattern, r=None, stoyan: float = STOYAN_COEFFICIENT) -> SummaryCurve:
    """Estimate the mark correlation function kmm(r).

    Mean product of the marks of point pairs at distance r, normalised by the
    squared mean mark. Pairs are weighted by Ripley's isotropic correction.

    Parameters
    ----------
    pattern : Pattern
        Pattern with numeric marks and at least 2 points
    r : array-like, optional
        Radius grid. Default: ``radius_grid(pattern)``
    stoyan : float
        Bandwidth coefficient

    Returns
    -------
    SummaryCurve
        Curve of kind 'kmm' with 'Ripley' correction

    Raises
    ------
    TypeError
        If the pattern has no numeric marks
    """
    _check_pattern(pattern, marked=True)
    r = _as_radii(pattern, r)
    summary = MarkSummary(pattern, r, stoyan=stoyan)
    return summary.curve()


def summarize_pattern(
    pattern: Pattern,
    r=None,
    fast: bool = False,
    spar: float = DEFAULT_SPAR,
) -> Tuple[SummaryCurve, SummaryCurve]:
    """Estimate G(r) and g(r) in one mode.

    Returns
    -------
    tuple
        (G, g); exact mode uses Hanisch and translation corrections, fast mode
        uses uncorrected G and ``estimate_pcf_fast``
    """
    if fast:
        return gest(pattern, r, correction="none"), estimate_pcf_fast(pattern, r, spar=spar)
    return gest(pattern, r, correction="han"), pcf(pattern, r)


# =============================================================================
# INCREMENTAL SUMMARIES
# =============================================================================


class PatternSummary:
    """G(r) and g(r) of an unmarked pattern, updatable point by point.

    Parameters
    ----------
    pattern : Pattern
        Pattern with at least 2 points
    r : np.ndarray
        Radius grid
    fast : bool
        Estimate in fast mode (uncorrected G, pcf from smoothed K)
    spar : float
        Spline smoothing of the fast pcf
    stoyan : float
        Kernel bandwidth coefficient of the exact pcf
    """

    def __init__(
        self,
        pattern: Pattern,
        r: np.ndarray,
        fast: bool = False,
        spar: float = DEFAULT_SPAR,
        stoyan: float = STOYAN_COEFFICIENT,
    ):
        _check_pattern(pattern)
        self.pattern = pattern
        self.r = _as_radii(pattern, r)
        self.fast = fast
        self.spar = spar
        self.h = bandwidth(pattern.intensity, stoyan)

        self.nn_dist, self.nn_idx = _nearest_neighbours(pattern.coords)
        if fast:
            self.bdist = None
            _, _, _, d = _close_pairs(pattern.coords, self.r[-1])
            self.pair_sums = _count_within(d, self.r)
        else:
            self.bdist = pattern.window.boundary_distance(pattern.x, pattern.y)
            _, _, delta, d = _close_pairs(pattern.coords, self.reach)
            weights = _translate_weights(pattern.window, delta, d)
            self.pair_sums = _kernel_sums(self.r, d, weights, self.h)

    @property
    def reach(self) -> float:
        """Largest pair distance contributing to the curves."""
        return self.r[-1] if self.fast else self.r[-1] + self.h

    def curves(self) -> Tuple[SummaryCurve, SummaryCurve]:
        """Current (G, g) curves."""
        n_points = self.pattern.n_points
        area = self.pattern.window.area
        if self.fast:
            g_values = _gest_uncorrected(self.nn_dist, self.r)
            k = _k_from_counts(self.pair_sums, n_points, area)
            return (
                SummaryCurve(self.r, g_values, "G", "none", fast=True),
                SummaryCurve(self.r, _pcf_from_k(self.r, k, self.spar), "pcf", "none", fast=True),
            )
        g_values = _gest_hanisch(self.nn_dist, self.bdist, self.pattern.window, self.r)
        return (
            SummaryCurve(self.r, g_values, "G", "han", fast=False),
            SummaryCurve(self.r, _pcf_from_sums(self.pair_sums, n_points, area), "pcf", "translate", fast=False),
        )

    def _pair_contribution(self, delta: np.ndarray, d: np.ndarray) -> np.ndarray:
        if self.fast:
            return _count_within(d, self.r)
        near = d <= self.reach
        weights = _translate_weights(self.pattern.window, delta[near], d[near])
        return _kernel_sums(self.r, d[near], weights, self.h)

    def relocate(self, index: int, xy) -> PatternSummary:
        """Summary of the pattern with point ``index`` moved to ``xy``.

        Only the pairs involving the moved point are re-evaluated; the
        current summary is left unchanged.
        """
        pattern = self.pattern.with_point(index, xy)
        coords = pattern.coords
        others = np.flatnonzero(np.arange(pattern.n_points) != index)

        delta_old = self.pattern.coords[index] - coords[others]
        delta_new = coords[index] - coords[others]
        d_old = np.hypot(delta_old[:, 0], delta_old[:, 1])
        d_new = np.hypot(delta_new[:, 0], delta_new[:, 1])

        # Nearest neighbours: points that lost their neighbour are recomputed
        nn_dist = self.nn_dist.copy()
        nn_idx = self.nn_idx.copy()
        closer = d_new < nn_dist[others]
        nn_dist[others[closer]] = d_new[closer]
        nn_idx[others[closer]] = index
        lost = others[(self.nn_idx[others] == index) & ~closer]
        if len(lost) > 0:
            distances = cdist(coords[lost], coords)
            distances[np.arange(len(lost)), lost] = np.inf
            nn_idx[lost] = np.argmin(distances, axis=1)
            nn_dist[lost] = distances[np.arange(len(lost)), nn_idx[lost]]
        nearest = np.argmin(d_new)
        nn_dist[index] = d_new[nearest]
        nn_idx[index] = others[nearest]

        updated = object.__new__(PatternSummary)
        updated.pattern = pattern
        updated.r = self.r
        updated.fast = self.fast
        updated.spar = self.spar
        updated.h = self.h
        updated.nn_dist = nn_dist
        updated.nn_idx = nn_idx
        if self.fast:
            updated.bdist = None
        else:
            updated.bdist = self.bdist.copy()
            updated.bdist[index] = pattern.window.boundary_distance(coords[index, 0], coords[index, 1])
        updated.pair_sums = (
            self.pair_sums
            - self._pair_contribution(delta_old, d_old)
            + self._pair_contribution(delta_new, d_new)
        )
        return updated


class MarkSummary:
    """Mark correlation function of a pattern, updatable by mark swaps.

    Point locations are fixed, so pair distances, edge correction weights
    and the kernel-weighted pair density are computed once.
    """

    def __init__(self, pattern: Pattern, r: np.ndarray, stoyan: float = STOYAN_COEFFICIENT):
        _check_pattern(pattern, marked=True)
        self.pattern = pattern
        self.r = _as_radii(pattern, r)
        self.h = bandwidth(pattern.intensity, stoyan)

        marks = pattern.marks.astype(float)
        self.mean_mark = float(np.mean(marks))
        self.i, self.j, _, self.d = _close_pairs(pattern.coords, self.r[-1] + self.h)
        self.e = _isotropic_pair_weights(pattern.window, pattern.coords, self.i, self.j, self.d)

        sums = _kernel_sums(
            self.r,
            self.d,
            np.column_stack([marks[self.i] * marks[self.j] * self.e, self.e]),
            self.h,
        )
        self.numerator = sums[:, 0]
        self.denominator = sums[:, 1]

    def curve(self) -> SummaryCurve:
        values = _markcorr_from_sums(self.numerator, self.denominator, self.mean_mark)
        return SummaryCurve(self.r, values, "kmm", "Ripley", fast=False)

    def swap(self, a: int, b: int) -> MarkSummary:
        """Summary of the pattern with the marks of points a and b swapped."""
        old_marks = self.pattern.marks.astype(float)
        new_marks = old_marks.copy()
        new_marks[a], new_marks[b] = old_marks[b], old_marks[a]

        touched = np.isin(self.i, (a, b)) | np.isin(self.j, (a, b))
        i, j = self.i[touched], self.j[touched]
        change = (new_marks[i] * new_marks[j] - old_marks[i] * old_marks[j]) * self.e[touched]

        swapped = self.pattern.marks.copy()
        swapped[a], swapped[b] = self.pattern.marks[b], self.pattern.marks[a]

        updated = object.__new__(MarkSummary)
        updated.__dict__.update(self.__dict__)
        updated.pattern = self.pattern.with_marks(swapped)
        updated.numerator = self.numerator + _kernel_sums(self.r, self.d[touched], change, self.h)
        return updated
