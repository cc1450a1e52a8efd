"""Null-model patterns from fitted point processes.

Two processes are available:
- poisson: complete spatial randomness with the observed point count
- cluster: Thomas process fitted by minimum contrast on Ripley's K

Simulated patterns are returned as a ReconstructionResult without energy
trajectories; their energy is recomputed by ``calculate_energy``.
"""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np
from scipy.optimize import minimize

from pyshar.constants import (
    CONTRAST_EXPONENT,
    EPSILON,
    MAX_SIMULATION_ATTEMPTS,
    N_RADII,
)
from pyshar.core.energy import ProgressCallback, resolve_progress
from pyshar.core.reconstruction import check_n_random, run_independent
from pyshar.core.results import ReconstructionResult
from pyshar.exceptions import EmptyPatternError
from pyshar.logger import get_logger
from pyshar.spatial.pattern import Pattern, random_pattern
from pyshar.spatial.summary import kest, radius_grid
from pyshar.spatial.window import Window

logger = get_logger(__name__)

PROCESSES = ("poisson", "cluster")


# =============================================================================
# THOMAS PROCESS
# =============================================================================


def thomas_k(r: np.ndarray, kappa: float, scale: float) -> np.ndarray:
    """K-function of a Thomas process.

    Parameters
    ----------
    r : np.ndarray
        Radii
    kappa : float
        Intensity of the parent process
    scale : float
        Standard deviation of the offspring displacement

    Returns
    -------
    np.ndarray
        K(r) = pi r^2 + (1 - exp(-r^2 / (4 scale^2))) / kappa
    """
    r = np.asarray(r, dtype=float)
    return np.pi * r ** 2 + (1.0 - np.exp(-r ** 2 / (4.0 * scale ** 2))) / kappa


def fit_thomas(pattern: Pattern, r_length: int = N_RADII) -> Dict[str, float]:
    """Fit a Thomas process by minimum contrast.

    Minimises the integrated squared difference of ``K(r) ** q`` between the
    translation-corrected empirical K-function and the model (Diggle 2003),
    with ``q = 1/4``. Parameters are optimised on log scale.

    Parameters
    ----------
    pattern : Pattern
        Observed pattern with at least 2 points
    r_length : int
        Number of radii of the contrast

    Returns
    -------
    dict
        kappa (parent intensity), scale (offspring spread) and mu (mean
        offspring per parent)
    """
    r = radius_grid(pattern, r_length)
    observed = kest(pattern, r, correction="translate")[1:]
    r = r[1:]
    observed_q = np.maximum(observed, 0.0) ** CONTRAST_EXPONENT
    intensity = pattern.intensity

    def contrast(theta: np.ndarray) -> float:
        kappa, scale = np.exp(theta)
        model = thomas_k(r, kappa, scale) ** CONTRAST_EXPONENT
        return float(np.sum((observed_q - model) ** 2))

    start = np.log([intensity / 5.0, r[-1] / 10.0])
    fit = minimize(contrast, start, method="Nelder-Mead")
    if not fit.success:
        logger.warning("Minimum contrast fit did not converge: %s", fit.message)

    kappa, scale = np.exp(fit.x)
    return {"kappa": float(kappa), "scale": float(scale), "mu": float(intensity / kappa)}


def simulate_thomas(
    window: Window,
    n_points: int,
    kappa: float,
    scale: float,
    mu: float,
    rng: np.random.Generator,
) -> Pattern:
    """Simulate a Thomas process with exactly ``n_points`` points.

    Parents are placed in the window dilated by four times ``scale`` so that
    clusters near the border are not thinned. Realisations are accumulated
    until at least ``n_points`` offspring fall inside the window, then a
    random subset of ``n_points`` is kept.
    """
    extended = window.expand(4.0 * scale)
    collected = []
    total = 0

    for _ in range(MAX_SIMULATION_ATTEMPTS):
        parents = extended.random_points(rng.poisson(kappa * extended.area), rng)
        counts = rng.poisson(mu, size=len(parents))
        offspring = np.repeat(parents, counts, axis=0)
        offspring = offspring + rng.normal(0.0, scale, size=offspring.shape)
        offspring = offspring[window.contains(offspring[:, 0], offspring[:, 1])]

        collected.append(offspring)
        total += len(offspring)
        if total >= n_points:
            break
    else:
        raise RuntimeError(
            f"Thomas process produced {total} of {n_points} points "
            f"after {MAX_SIMULATION_ATTEMPTS} realisations"
        )

    coords = np.concatenate(collected, axis=0)
    keep = rng.choice(len(coords), size=n_points, replace=False)
    return Pattern(coords[keep], window)


# =============================================================================
# FITTING AND SIMULATION
# =============================================================================


def fit_point_process(
    pattern: Pattern,
    n_random: int = 1,
    process: str = "poisson",
    return_input: bool = True,
    return_para: bool = False,
    r_length: int = N_RADII,
    seed=None,
    max_workers: Optional[int] = None,
    verbose: bool = False,
    progress: Optional[ProgressCallback] = None,
) -> ReconstructionResult:
    """Fit a point process to a pattern and simulate null-model patterns.

    Parameters
    ----------
    pattern : Pattern
        Observed pattern
    n_random : int
        Number of simulated patterns
    process : str
        'poisson' (complete spatial randomness) or 'cluster' (Thomas process)
    return_input : bool
        Store the observed pattern in the result
    return_para : bool
        Store the fitted parameters in ``result.parameters``
    r_length : int
        Number of radii of the minimum contrast fit
    seed : int or np.random.SeedSequence, optional
        Seed of the random streams
    max_workers : int, optional
        Number of threads; 1 runs sequentially
    verbose : bool
        Print progress to stderr (ignored when ``progress`` is given)
    progress : callable, optional
        Called as ``progress(completed, total)`` after every simulation

    Returns
    -------
    ReconstructionResult
        Observed and simulated patterns, without energy trajectories

    Raises
    ------
    EmptyPatternError
        If the observed pattern has no points
    InvalidPatternError
        If a cluster process is fitted to fewer than 2 points

    Examples
    --------
    >>> result = fit_point_process(species_a, n_random=19, process="cluster")
    >>> calculate_energy(result, return_mean=True)
    """
    if not isinstance(pattern, Pattern):
        raise TypeError(f"pattern must be a Pattern, got {type(pattern).__name__}")
    if pattern.n_points == 0:
        raise EmptyPatternError("Observed pattern contains no points")
    if process not in PROCESSES:
        raise ValueError(f"Unknown process: '{process}'. Choose from {list(PROCESSES)}")
    n_random = check_n_random(n_random)
    n_points, window = pattern.n_points, pattern.window

    if process == "poisson":
        parameters = {"lambda": pattern.intensity}

        def simulate(rng: np.random.Generator) -> Pattern:
            return random_pattern(n_points, window, rng)

    else:
        parameters = fit_thomas(pattern, r_length)
        if parameters["scale"] < EPSILON:
            raise RuntimeError(f"Degenerate Thomas process fit: {parameters}")
        logger.info(
            "Fitted Thomas process: kappa=%.4g, scale=%.4g, mu=%.4g",
            parameters["kappa"], parameters["scale"], parameters["mu"],
        )

        def simulate(rng: np.random.Generator) -> Pattern:
            return simulate_thomas(window, n_points, rng=rng, **parameters)

    randomized = run_independent(
        simulate, n_random, seed, max_workers, resolve_progress(verbose, progress)
    )

    return ReconstructionResult(
        observed=pattern if return_input else None,
        randomized=randomized,
        energy_df=None,
        method="fit_point_process()",
        parameters=parameters if return_para else {},
    )
