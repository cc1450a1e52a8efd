"""Energy between observed and reconstructed point patterns.

The energy is the weighted sum, over summary functions, of the mean absolute
difference between the observed and a candidate curve (Tscheschel & Stoyan
2006; Wiegand & Moloney 2014). Unmarked patterns are described by G(r) and
g(r), marked patterns by the mark correlation function kmm(r). Lower is
better, zero means identical summary functions.
"""

from __future__ import annotations

import warnings
from typing import Callable, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from pyshar.constants import DEFAULT_COMP_FAST, DEFAULT_SPAR, DEFAULT_WEIGHTS
from pyshar.core.results import BaseReconstructionResult, ResultKind
from pyshar.exceptions import (
    InvalidWeightError,
    MissingObservedPatternError,
    ModeMismatchError,
)
from pyshar.logger import ProgressReporter, get_logger
from pyshar.spatial.pattern import Pattern
from pyshar.spatial.summary import (
    SummaryCurve,
    markcorr,
    radius_grid,
    summarize_pattern,
)

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


def use_fast_mode(n_points: int, comp_fast: int = DEFAULT_COMP_FAST) -> bool:
    """Whether summary functions are estimated the fast way.

    The threshold is exclusive: a pattern with exactly ``comp_fast`` points
    is still estimated with edge correction.
    """
    return n_points > comp_fast


def validate_weights(weights: Sequence[float], n_channels: Optional[int] = None) -> Tuple[float, ...]:
    """Check energy weights.

    Parameters
    ----------
    weights : sequence of float
        One non-negative weight per summary function
    n_channels : int, optional
        Expected number of weights

    Returns
    -------
    tuple
        Weights as floats

    Raises
    ------
    InvalidWeightError
        If weights are negative, of the wrong length, or
        ``0 < sum(weights) <= 1`` does not hold
    """
    try:
        weights = tuple(float(w) for w in weights)
    except (TypeError, ValueError) as e:
        raise InvalidWeightError(f"Weights must be a sequence of numbers: {e}") from e

    if n_channels is not None and len(weights) != n_channels:
        raise InvalidWeightError(f"Expected {n_channels} weights, got {len(weights)}")
    if any(not np.isfinite(w) or w < 0 for w in weights):
        raise InvalidWeightError(f"Weights must be finite and non-negative, got {weights}")

    total = sum(weights)
    if total > 1 or total == 0:
        raise InvalidWeightError("The sum of 'weights' must be 0 < sum(weights) <= 1.")
    return weights


def curve_distance(observed: SummaryCurve, candidate: SummaryCurve) -> float:
    """Mean absolute difference of two curves, skipping NaN samples.

    Raises
    ------
    ModeMismatchError
        If the curves differ in function, correction, mode or radius grid
    """
    if observed.kind != candidate.kind:
        raise ModeMismatchError(
            f"Cannot compare summary functions '{observed.kind}' and '{candidate.kind}'"
        )
    if observed.fast != candidate.fast or observed.correction != candidate.correction:
        raise ModeMismatchError(
            f"Cannot compare {observed.kind} curves estimated in different modes "
            f"(fast={observed.fast}, correction='{observed.correction}' vs "
            f"fast={candidate.fast}, correction='{candidate.correction}')"
        )
    if observed.r.shape != candidate.r.shape or not np.allclose(observed.r, candidate.r):
        raise ModeMismatchError(f"{observed.kind} curves use different radius grids")

    difference = np.abs(observed.values - candidate.values)
    valid = ~np.isnan(difference)
    if not np.any(valid):
        warnings.warn(f"No comparable {observed.kind}(r) values, energy is NaN")
        return np.nan
    return float(np.mean(difference[valid]))


def compute_energy(
    observed_curves: Sequence[SummaryCurve],
    candidate_curves: Sequence[SummaryCurve],
    weights: Optional[Sequence[float]] = None,
) -> float:
    """Energy between two sets of summary curves.

    Parameters
    ----------
    observed_curves : sequence of SummaryCurve
        Curves of the observed pattern, one per channel
    candidate_curves : sequence of SummaryCurve
        Curves of the candidate pattern in the same channel order
    weights : sequence of float, optional
        Channel weights with ``0 < sum <= 1``; required for more than one
        channel, a single channel defaults to weight 1

    Returns
    -------
    float
        Non-negative energy (NaN only if a channel has no comparable samples)
    """
    observed_curves = tuple(observed_curves)
    candidate_curves = tuple(candidate_curves)
    if len(observed_curves) != len(candidate_curves):
        raise ValueError(
            f"Got {len(observed_curves)} observed but {len(candidate_curves)} candidate curves"
        )
    if weights is None:
        if len(observed_curves) != 1:
            raise InvalidWeightError("Weights are required for more than one summary function")
        weights = (1.0,)
    else:
        weights = validate_weights(weights, len(observed_curves))

    return float(
        sum(
            weight * curve_distance(observed, candidate)
            for weight, observed, candidate in zip(weights, observed_curves, candidate_curves)
        )
    )


def pattern_energy(
    observed: Pattern,
    candidate: Pattern,
    weights: Sequence[float] = DEFAULT_WEIGHTS,
    comp_fast: int = DEFAULT_COMP_FAST,
    r=None,
) -> float:
    """Energy between two unmarked patterns based on G(r) and g(r)."""
    fast = use_fast_mode(observed.n_points, comp_fast)
    if r is None:
        r = radius_grid(observed)
    return compute_energy(
        summarize_pattern(observed, r, fast=fast),
        summarize_pattern(candidate, r, fast=fast),
        weights,
    )


def resolve_progress(verbose: bool, progress: Optional[ProgressCallback]) -> Optional[ProgressCallback]:
    if progress is not None:
        return progress
    return ProgressReporter() if verbose else None


def calculate_energy(
    pattern: BaseReconstructionResult,
    weights: Sequence[float] = DEFAULT_WEIGHTS,
    return_mean: bool = False,
    comp_fast: int = DEFAULT_COMP_FAST,
    verbose: bool = True,
    progress: Optional[ProgressCallback] = None,
    spar: float = DEFAULT_SPAR,
) -> Union[pd.Series, float]:
    """Calculate the energy of all reconstructed patterns.

    If the result stores energy trajectories, the last recorded energy of each
    reconstruction is reported. Otherwise summary functions of the observed
    and every randomized pattern are estimated and compared. Patterns with
    more than ``comp_fast`` points use the fast estimators (no edge
    correction, pcf from the K-function).

    Parameters
    ----------
    pattern : ReconstructionResult or MarkedReconstructionResult
        Reconstructed patterns including the observed pattern
    weights : sequence of float
        Weights of Gest(r) and pcf(r), ``0 < sum(weights) <= 1``; not used
        for marked results
    return_mean : bool
        Return the mean energy over all reconstructions
    comp_fast : int
        Point count above which summary functions are estimated fast
    verbose : bool
        Print progress to stderr (ignored when ``progress`` is given)
    progress : callable, optional
        Called as ``progress(completed, total)`` after every reconstruction
    spar : float
        Spline smoothing of the fast pcf

    Returns
    -------
    pd.Series or float
        Energies named ``randomized_1 ... randomized_N`` in reconstruction
        order, or their mean

    Raises
    ------
    TypeError
        If pattern is not a reconstruction result
    MissingObservedPatternError
        If the result has no observed pattern
    InvalidWeightError
        If weights do not satisfy ``0 < sum(weights) <= 1``

    Examples
    --------
    >>> result = fit_point_process(species_a, n_random=19)
    >>> calculate_energy(result)
    >>> calculate_energy(result, return_mean=True)
    """
    if not isinstance(pattern, BaseReconstructionResult):
        raise TypeError(
            "Class of 'pattern' must be ReconstructionResult or MarkedReconstructionResult, "
            f"got {type(pattern).__name__}."
        )
    if not isinstance(pattern.observed, Pattern):
        raise MissingObservedPatternError("Input must include 'observed' pattern.")

    reporter = resolve_progress(verbose, progress)
    observed = pattern.observed
    randomized = pattern.randomized
    total = len(randomized)

    if pattern.kind is ResultKind.PATTERN:
        weights = validate_weights(weights, 2)
    elif pattern.kind is not ResultKind.MARKS:
        raise TypeError(f"Unknown result kind: {pattern.kind}")

    if pattern.has_trajectories:
        energies = pattern.final_energies()
        if reporter is not None and total > 0:
            reporter(total, total)
    else:
        r = radius_grid(observed)
        energies = np.empty(total)

        if pattern.kind is ResultKind.PATTERN:
            fast = use_fast_mode(observed.n_points, comp_fast)
            observed_curves = summarize_pattern(observed, r, fast=fast, spar=spar)
            logger.debug(
                "Recomputing energy of %d reconstructions (fast=%s)", total, fast
            )
            for k, candidate in enumerate(randomized):
                candidate_curves = summarize_pattern(candidate, r, fast=fast, spar=spar)
                energies[k] = compute_energy(observed_curves, candidate_curves, weights)
                if reporter is not None:
                    reporter(k + 1, total)
        else:
            observed_curve = markcorr(observed, r)
            for k, candidate in enumerate(randomized):
                energies[k] = curve_distance(observed_curve, markcorr(candidate, r))
                if reporter is not None:
                    reporter(k + 1, total)

    result = pd.Series(energies, index=pattern.names, dtype=float, name="energy")

    if return_mean:
        return float(result.mean())
    return result
