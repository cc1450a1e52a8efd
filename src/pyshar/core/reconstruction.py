"""Pattern reconstruction by simulated annealing.

Reconstructions start from a random pattern (or random marks) and are
improved step by step so that their summary functions approach those of the
observed pattern (Tscheschel & Stoyan 2006; Kirkpatrick et al. 1983):

- unmarked: one random point is relocated per iteration, energy from G(r)
  and g(r)
- marked: the marks of two random points are swapped per iteration at fixed
  locations, energy from the mark correlation function

A proposal with lower energy is always accepted. A proposal that does not
lower the energy is accepted with probability
``annealing * cooling_rate ** iteration`` (geometric cooling), so
``annealing=0`` gives a greedy search.

Independent reconstructions run in a thread pool, each with its own random
stream spawned from one seed. The summary functions of the observed pattern
are estimated once and shared read-only.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from pyshar.config import AnnealingConfig
from pyshar.constants import (
    DEFAULT_ANNEALING,
    DEFAULT_COMP_FAST,
    DEFAULT_COOLING_RATE,
    DEFAULT_MAX_RUNS,
    DEFAULT_SPAR,
    DEFAULT_WEIGHTS,
    N_RADII,
)
from pyshar.core.energy import (
    ProgressCallback,
    compute_energy,
    curve_distance,
    resolve_progress,
    use_fast_mode,
    validate_weights,
)
from pyshar.core.results import (
    MarkedReconstructionResult,
    ReconstructionResult,
    energy_frame,
)
from pyshar.exceptions import EmptyPatternError, WindowMismatchError
from pyshar.logger import get_logger
from pyshar.spatial.pattern import Pattern, random_pattern
from pyshar.spatial.randomization import (
    propose_location,
    propose_swap,
    random_walk_marks,
)
from pyshar.spatial.summary import MarkSummary, PatternSummary, summarize_pattern
from pyshar.spatial.window import Window

logger = get_logger(__name__)

MODES = ("auto", "exact", "fast")
MARK_NULL_MODELS = ("shuffle", "random_walk")


# =============================================================================
# ANNEALING LOOP
# =============================================================================


def anneal(
    state,
    energy: float,
    propose: Callable,
    evaluate: Callable[[object], float],
    config: AnnealingConfig,
    rng: np.random.Generator,
) -> Tuple[object, float, List[Tuple[int, float]], str]:
    """Run one simulated annealing optimisation.

    Parameters
    ----------
    state : object
        Initial state
    energy : float
        Energy of the initial state
    propose : callable
        ``propose(state, rng) -> new_state``; must not modify ``state``
    evaluate : callable
        ``evaluate(state) -> energy``
    config : AnnealingConfig
        Stopping rules and acceptance schedule
    rng : np.random.Generator
        Random stream of this run

    Returns
    -------
    tuple
        (final state, final energy, trajectory of (iteration, energy),
        stop criterion)
    """
    trajectory = []
    stagnation = 0
    stop = "max_runs"

    for i in range(1, config.max_runs + 1):
        proposal = propose(state, rng)
        proposal_energy = evaluate(proposal)

        improved = proposal_energy < energy or (
            np.isnan(energy) and not np.isnan(proposal_energy)
        )
        if improved:
            state, energy = proposal, proposal_energy
            stagnation = 0
        else:
            stagnation += 1
            probability = config.acceptance_probability(i)
            if probability > 0 and not np.isnan(proposal_energy) and rng.random() < probability:
                state, energy = proposal, proposal_energy

        trajectory.append((i, energy))

        if config.e_threshold is not None and energy <= config.e_threshold:
            stop = "e_threshold"
            break
        if stagnation >= config.no_change:
            stop = "no_change"
            break

    if not trajectory:
        trajectory.append((0, energy))
    return state, energy, trajectory, stop


def run_independent(
    task: Callable[[np.random.Generator], object],
    n_random: int,
    seed,
    max_workers: Optional[int],
    reporter: Optional[ProgressCallback],
) -> list:
    """Run ``task`` n_random times with independent random streams.

    Outputs are returned in run order. A failing run aborts the whole batch.
    """
    if not isinstance(seed, np.random.SeedSequence):
        seed = np.random.SeedSequence(seed)
    streams = [np.random.default_rng(s) for s in seed.spawn(n_random)]
    outputs = [None] * n_random

    if max_workers == 1:
        for k, rng in enumerate(streams):
            outputs[k] = task(rng)
            if reporter is not None:
                reporter(k + 1, n_random)
        return outputs

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_run = {executor.submit(task, rng): k for k, rng in enumerate(streams)}
        try:
            for completed, future in enumerate(as_completed(future_to_run), start=1):
                outputs[future_to_run[future]] = future.result()
                if reporter is not None:
                    reporter(completed, n_random)
        except BaseException:
            for future in future_to_run:
                future.cancel()
            raise
    return outputs


def check_n_random(n_random: int) -> int:
    if isinstance(n_random, bool) or int(n_random) != n_random or n_random < 1:
        raise ValueError(f"n_random must be a positive integer, got {n_random}")
    return int(n_random)


# =============================================================================
# UNMARKED RECONSTRUCTION
# =============================================================================


def _resolve_mode(mode: str, n_points: int, comp_fast: int) -> bool:
    if mode not in MODES:
        raise ValueError(f"Unknown mode: '{mode}'. Choose from {list(MODES)}")
    if mode == "auto":
        return use_fast_mode(n_points, comp_fast)
    return mode == "fast"


def _resolve_target(
    pattern: Pattern, n_points: Optional[int], window: Optional[Window]
) -> Tuple[int, Window]:
    """Point count and window of the reconstructions."""
    if window is None:
        window = pattern.window
    elif not isinstance(window, Window):
        raise TypeError(f"window must be a Window, got {type(window).__name__}")

    if n_points is None:
        n_points = pattern.n_points
    elif isinstance(n_points, bool) or int(n_points) != n_points or n_points < 1:
        raise WindowMismatchError(
            f"Cannot place {n_points} point(s) in the window; a positive count is needed"
        )
    density = n_points / window.area
    if not np.isfinite(density) or density <= 0:
        raise WindowMismatchError(
            f"Window of area {window.area} cannot hold {n_points} points at finite density"
        )
    return int(n_points), window


def reconstruct_pattern(
    pattern: Pattern,
    n_random: int = 1,
    max_runs: int = DEFAULT_MAX_RUNS,
    no_change: float = np.inf,
    mode: str = "auto",
    annealing: float = DEFAULT_ANNEALING,
    cooling_rate: float = DEFAULT_COOLING_RATE,
    e_threshold: Optional[float] = None,
    comp_fast: int = DEFAULT_COMP_FAST,
    weights: Sequence[float] = DEFAULT_WEIGHTS,
    n_points: Optional[int] = None,
    window: Optional[Window] = None,
    r_length: int = N_RADII,
    spar: float = DEFAULT_SPAR,
    return_input: bool = True,
    seed=None,
    max_workers: Optional[int] = None,
    verbose: bool = False,
    progress: Optional[ProgressCallback] = None,
) -> ReconstructionResult:
    """Reconstruct an unmarked point pattern by simulated annealing.

    Parameters
    ----------
    pattern : Pattern
        Observed pattern
    n_random : int
        Number of independent reconstructions
    max_runs : int
        Maximum number of iterations per reconstruction
    no_change : float
        Stop after this many consecutive iterations without improvement
    mode : str
        Estimator mode: 'auto' (fast above ``comp_fast`` points), 'exact'
        (edge corrected) or 'fast' (uncorrected, pcf from K-function)
    annealing : float
        Initial probability to accept a proposal that does not lower the
        energy; 0 for a greedy search
    cooling_rate : float
        Geometric decay of the acceptance probability per iteration
    e_threshold : float, optional
        Stop as soon as the energy drops to this value
    comp_fast : int
        Point count threshold of the 'auto' mode
    weights : sequence of float
        Weights of Gest(r) and pcf(r), ``0 < sum(weights) <= 1``
    n_points : int, optional
        Number of points of the reconstructions (default: as observed)
    window : Window, optional
        Window of the reconstructions (default: observed window)
    r_length : int
        Number of radii of the summary functions
    spar : float
        Spline smoothing of the fast pcf
    return_input : bool
        Store the observed pattern in the result
    seed : int or np.random.SeedSequence, optional
        Seed of the random streams
    max_workers : int, optional
        Number of threads; 1 runs sequentially
    verbose : bool
        Print progress to stderr (ignored when ``progress`` is given)
    progress : callable, optional
        Called as ``progress(completed, total)`` after every reconstruction

    Returns
    -------
    ReconstructionResult
        Observed pattern, reconstructions and their energy trajectories

    Raises
    ------
    EmptyPatternError
        If the observed pattern has no points
    WindowMismatchError
        If the window cannot hold the requested number of points
    InvalidWeightError
        If weights do not satisfy ``0 < sum(weights) <= 1``

    Examples
    --------
    >>> result = reconstruct_pattern(species_a, n_random=19, max_runs=1000)
    >>> calculate_energy(result)
    """
    if not isinstance(pattern, Pattern):
        raise TypeError(f"pattern must be a Pattern, got {type(pattern).__name__}")
    if pattern.n_points == 0:
        raise EmptyPatternError("Observed pattern contains no points")
    n_random = check_n_random(n_random)
    weights = validate_weights(weights, 2)
    config = AnnealingConfig(
        max_runs=max_runs,
        no_change=no_change,
        annealing=annealing,
        cooling_rate=cooling_rate,
        e_threshold=e_threshold,
    )
    target_n, target_window = _resolve_target(pattern, n_points, window)
    fast = _resolve_mode(mode, pattern.n_points, comp_fast)

    r = np.linspace(0.0, pattern.window.rmax(pattern.intensity), r_length)
    observed_curves = summarize_pattern(pattern, r, fast=fast, spar=spar)

    def evaluate(summary: PatternSummary) -> float:
        return compute_energy(observed_curves, summary.curves(), weights)

    def propose(summary: PatternSummary, rng: np.random.Generator) -> PatternSummary:
        index, xy = propose_location(summary.pattern, rng)
        return summary.relocate(index, xy)

    def run(rng: np.random.Generator):
        start = random_pattern(target_n, target_window, rng)
        summary = PatternSummary(start, r, fast=fast, spar=spar)
        final, energy, trajectory, stop = anneal(
            summary, evaluate(summary), propose, evaluate, config, rng
        )
        return final.pattern, energy_frame(trajectory), stop

    logger.info(
        "Reconstructing %d pattern(s) of %d points (fast=%s, max_runs=%d)",
        n_random, target_n, fast, config.max_runs,
    )
    outputs = run_independent(
        run, n_random, seed, max_workers, resolve_progress(verbose, progress)
    )

    return ReconstructionResult(
        observed=pattern if return_input else None,
        randomized=[output[0] for output in outputs],
        energy_df=[output[1] for output in outputs],
        stop_criterion=[output[2] for output in outputs],
        method="reconstruct_pattern()",
    )


# =============================================================================
# MARKED RECONSTRUCTION
# =============================================================================


def _initial_marks(
    pattern: Pattern,
    marks: Pattern,
    null_model: str,
    walk_steps: int,
    rng: np.random.Generator,
) -> np.ndarray:
    if null_model == "shuffle":
        if pattern.n_points == marks.n_points:
            return rng.permutation(marks.marks)
        return rng.choice(marks.marks, size=pattern.n_points, replace=True)

    # Marks of the nearest observed point, locally randomized
    _, nearest = cKDTree(marks.coords).query(pattern.coords, k=1)
    located = pattern.with_marks(marks.marks[nearest])
    return random_walk_marks(located, step_count=walk_steps, rng=rng)


def reconstruct_pattern_marks(
    pattern: Pattern,
    marks: Pattern,
    n_random: int = 1,
    max_runs: int = DEFAULT_MAX_RUNS,
    no_change: float = np.inf,
    annealing: float = DEFAULT_ANNEALING,
    cooling_rate: float = DEFAULT_COOLING_RATE,
    e_threshold: Optional[float] = None,
    r_length: int = N_RADII,
    null_model: str = "shuffle",
    walk_steps: Optional[int] = None,
    return_input: bool = True,
    seed=None,
    max_workers: Optional[int] = None,
    verbose: bool = False,
    progress: Optional[ProgressCallback] = None,
) -> MarkedReconstructionResult:
    """Reconstruct the marks of a pattern by simulated annealing.

    Point locations are taken from ``pattern`` (typically a reconstructed
    unmarked pattern) and stay fixed; marks drawn from the observed marked
    pattern are swapped until the mark correlation function matches.

    Parameters
    ----------
    pattern : Pattern
        Point locations of the reconstructions (marks are ignored)
    marks : Pattern
        Observed pattern with numeric marks
    n_random : int
        Number of independent reconstructions
    max_runs : int
        Maximum number of iterations per reconstruction
    no_change : float
        Stop after this many consecutive iterations without improvement
    annealing : float
        Initial probability to accept a swap that does not lower the energy
    cooling_rate : float
        Geometric decay of the acceptance probability per iteration
    e_threshold : float, optional
        Stop as soon as the energy drops to this value
    r_length : int
        Number of radii of the mark correlation function
    null_model : str
        Initial marks: 'shuffle' (random permutation, or resampling if the
        point counts differ) or 'random_walk' (marks of the nearest observed
        point, randomized by local swaps)
    walk_steps : int, optional
        Swaps of the 'random_walk' null model (default: 10 per point)
    return_input : bool
        Store the observed marked pattern in the result
    seed : int or np.random.SeedSequence, optional
        Seed of the random streams
    max_workers : int, optional
        Number of threads; 1 runs sequentially
    verbose : bool
        Print progress to stderr (ignored when ``progress`` is given)
    progress : callable, optional
        Called as ``progress(completed, total)`` after every reconstruction

    Returns
    -------
    MarkedReconstructionResult

    Examples
    --------
    >>> result = reconstruct_pattern(species_a, n_random=1)
    >>> marks_recon = reconstruct_pattern_marks(result.randomized[0], species_a_dbh,
    ...                                         n_random=19, max_runs=1000)
    >>> calculate_energy(marks_recon, return_mean=False)
    """
    if not isinstance(pattern, Pattern) or not isinstance(marks, Pattern):
        raise TypeError("pattern and marks must both be Pattern objects")
    if marks.n_points == 0:
        raise EmptyPatternError("Observed marked pattern contains no points")
    if not marks.has_numeric_marks:
        raise TypeError("marks must be a pattern with numeric marks")
    if pattern.n_points < 2:
        raise WindowMismatchError(
            f"Cannot reconstruct marks of {pattern.n_points} point(s); at least 2 are needed"
        )
    if null_model not in MARK_NULL_MODELS:
        raise ValueError(f"Unknown null_model: '{null_model}'. Choose from {list(MARK_NULL_MODELS)}")
    n_random = check_n_random(n_random)
    config = AnnealingConfig(
        max_runs=max_runs,
        no_change=no_change,
        annealing=annealing,
        cooling_rate=cooling_rate,
        e_threshold=e_threshold,
    )
    if walk_steps is None:
        walk_steps = 10 * pattern.n_points

    r = np.linspace(0.0, marks.window.rmax(marks.intensity), r_length)
    observed_curve = MarkSummary(marks, r).curve()

    def evaluate(summary: MarkSummary) -> float:
        return curve_distance(observed_curve, summary.curve())

    def propose(summary: MarkSummary, rng: np.random.Generator) -> MarkSummary:
        a, b = propose_swap(summary.pattern, rng)
        return summary.swap(a, b)

    def run(rng: np.random.Generator):
        start = pattern.with_marks(_initial_marks(pattern, marks, null_model, walk_steps, rng))
        summary = MarkSummary(start, r)
        final, energy, trajectory, stop = anneal(
            summary, evaluate(summary), propose, evaluate, config, rng
        )
        return final.pattern, energy_frame(trajectory), stop

    logger.info(
        "Reconstructing marks of %d pattern(s) with %d points (null model '%s')",
        n_random, pattern.n_points, null_model,
    )
    outputs = run_independent(
        run, n_random, seed, max_workers, resolve_progress(verbose, progress)
    )

    return MarkedReconstructionResult(
        observed=marks if return_input else None,
        randomized=[output[0] for output in outputs],
        energy_df=[output[1] for output in outputs],
        stop_criterion=[output[2] for output in outputs],
    )
