"""
Tests for pattern and mark reconstruction by simulated annealing.
"""

import numpy as np
import pytest

from pyshar.config import AnnealingConfig
from pyshar.core import (
    EmptyPatternError,
    InvalidPatternError,
    InvalidWeightError,
    MarkedReconstructionResult,
    MissingObservedPatternError,
    ReconstructionResult,
    WindowMismatchError,
    calculate_energy,
    reconstruct_pattern,
    reconstruct_pattern_marks,
)
from pyshar.core.reconstruction import anneal, run_independent
from pyshar.spatial import Pattern, Window, create_pattern


class TestAnneal:
    """Test the annealing loop on a one-dimensional problem."""

    @staticmethod
    def step(state, rng):
        return state + rng.normal(0.0, 0.5)

    def test_greedy_monotone(self, rng):
        """Without annealing the energy never increases."""
        config = AnnealingConfig(max_runs=200, annealing=0.0)
        state, energy, trajectory, stop = anneal(5.0, 5.0, self.step, abs, config, rng)

        energies = [e for _, e in trajectory]
        assert len(trajectory) == 200
        assert [i for i, _ in trajectory] == list(range(1, 201))
        assert np.all(np.diff(energies) <= 0.0)
        assert energy == energies[-1] == abs(state)
        assert energy < 5.0
        assert stop == "max_runs"

    def test_annealing_accepts_worse(self):
        """With acceptance probability 1 every proposal is taken."""
        config = AnnealingConfig(max_runs=50, annealing=1.0, cooling_rate=1.0)
        rng = np.random.default_rng(1)
        _, _, trajectory, _ = anneal(0.0, 0.0, self.step, abs, config, rng)

        energies = np.array([e for _, e in trajectory])
        assert np.any(np.diff(energies) > 0.0)

    def test_no_change(self, rng):
        """Stops after no_change iterations without improvement."""
        config = AnnealingConfig(max_runs=100, no_change=5, annealing=0.0)
        _, energy, trajectory, stop = anneal(1.0, 1.0, lambda s, r: s, abs, config, rng)

        assert stop == "no_change"
        assert len(trajectory) == 5
        assert energy == 1.0

    def test_e_threshold(self, rng):
        """Stops as soon as the energy threshold is reached."""
        config = AnnealingConfig(max_runs=100, e_threshold=0.5)
        _, energy, trajectory, stop = anneal(2.0, 2.0, lambda s, r: 0.1, abs, config, rng)

        assert stop == "e_threshold"
        assert trajectory == [(1, 0.1)]
        assert energy == 0.1

    def test_zero_iterations(self, rng):
        """The initial energy is recorded without iterations."""
        config = AnnealingConfig(max_runs=0)
        _, energy, trajectory, stop = anneal(2.0, 2.0, self.step, abs, config, rng)
        assert trajectory == [(0, 2.0)]
        assert stop == "max_runs"

    def test_nan_energy_replaced(self, rng):
        """A NaN energy is replaced by the first comparable one."""
        config = AnnealingConfig(max_runs=1, annealing=0.0)
        _, energy, _, _ = anneal(np.nan, np.nan, lambda s, r: 3.0, abs, config, rng)
        assert energy == 3.0


class TestAnnealingConfig:
    """Test annealing configuration."""

    def test_defaults(self):
        """No energy threshold unless one is given."""
        config = AnnealingConfig()
        assert config.e_threshold is None
        assert AnnealingConfig(e_threshold=0.25).e_threshold == 0.25

    def test_acceptance_schedule(self):
        """Geometric cooling of the acceptance probability."""
        config = AnnealingConfig(annealing=0.5, cooling_rate=0.9)
        assert config.acceptance_probability(0) == pytest.approx(0.5)
        assert config.acceptance_probability(2) == pytest.approx(0.5 * 0.81)
        assert AnnealingConfig(annealing=0.0).acceptance_probability(1) == 0.0

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_runs": -1}, {"no_change": 0}, {"annealing": 1.5}, {"cooling_rate": 0.0}],
    )
    def test_invalid(self, kwargs):
        """Invalid settings are rejected."""
        with pytest.raises(ValueError):
            AnnealingConfig(**kwargs)


class TestRunIndependent:
    """Test independent runs in the thread pool."""

    def test_order_and_streams(self):
        """Outputs follow run order and streams are independent of threading."""
        threaded = run_independent(lambda rng: rng.random(), 8, 3, None, None)
        sequential = run_independent(lambda rng: rng.random(), 8, 3, 1, None)

        assert threaded == sequential
        assert len(set(threaded)) == 8

    def test_failure_propagates(self):
        """A failing run aborts the batch."""

        def task(rng):
            if rng.random() < 2.0:
                raise RuntimeError("run failed")

        with pytest.raises(RuntimeError, match="run failed"):
            run_independent(task, 4, 0, 2, None)


class TestReconstructPattern:
    """Test unmarked reconstruction."""

    def test_nineteen_reconstructions(self, csr_pattern):
        """19 reconstructions of a 50 point pattern."""
        result = reconstruct_pattern(csr_pattern, n_random=19, max_runs=10, seed=1)

        assert isinstance(result, ReconstructionResult)
        assert result.observed is csr_pattern
        assert len(result.randomized) == 19
        for pattern in result.randomized:
            assert pattern.n_points == 50
            assert np.all(csr_pattern.window.contains(pattern.x, pattern.y))

        energy = calculate_energy(result, verbose=False)
        assert len(energy) == 19
        assert np.all(np.isfinite(energy))
        assert np.all(energy >= 0.0)

    def test_unit_square(self, unit_square):
        """19 reconstructions of 50 points in the unit square."""
        observed = Pattern(unit_square.random_points(50, np.random.default_rng(50)), unit_square)
        result = reconstruct_pattern(observed, n_random=19, max_runs=10, seed=19)

        assert len(result.randomized) == 19
        assert all(pattern.n_points == 50 for pattern in result.randomized)
        assert all(pattern.window == unit_square for pattern in result.randomized)

        energy = calculate_energy(result, verbose=False)
        assert list(energy.index) == [f"randomized_{k}" for k in range(1, 20)]
        assert np.all(np.isfinite(energy)) and np.all(energy >= 0.0)

    def test_greedy_trajectory(self, csr_pattern):
        """Greedy reconstruction never increases the energy."""
        result = reconstruct_pattern(csr_pattern, n_random=2, max_runs=30, annealing=0.0, seed=2)

        for trajectory in result.energy_df:
            assert list(trajectory.columns) == ["i", "energy"]
            assert len(trajectory) == 30
            assert np.all(np.diff(trajectory["energy"].to_numpy()) <= 0.0)
        assert result.stop_criterion == ["max_runs", "max_runs"]

    def test_energy_matches_recomputation(self, csr_pattern):
        """The final trajectory energy equals the energy recomputed from the pattern."""
        result = reconstruct_pattern(csr_pattern, n_random=1, max_runs=15, seed=4)
        recomputed = calculate_energy(
            ReconstructionResult(observed=csr_pattern, randomized=result.randomized), verbose=False
        )
        assert result.final_energies()[0] == pytest.approx(recomputed.iloc[0], rel=1e-6)

    def test_reproducible(self, csr_pattern):
        """Same seed, same reconstructions, regardless of threading."""
        a = reconstruct_pattern(csr_pattern, n_random=3, max_runs=10, seed=9)
        b = reconstruct_pattern(csr_pattern, n_random=3, max_runs=10, seed=9, max_workers=1)

        for pa, pb in zip(a.randomized, b.randomized):
            np.testing.assert_array_equal(pa.coords, pb.coords)

    def test_e_threshold(self, csr_pattern):
        """A reachable threshold stops at the first iteration."""
        result = reconstruct_pattern(csr_pattern, n_random=2, max_runs=50, e_threshold=1e6, seed=5)
        assert result.stop_criterion == ["e_threshold", "e_threshold"]
        assert all(len(df) == 1 for df in result.energy_df)

    def test_fast_mode(self, csr_pattern):
        """Fast estimators can be forced."""
        result = reconstruct_pattern(csr_pattern, n_random=1, max_runs=5, mode="fast", seed=6)
        assert np.isfinite(result.final_energies()[0])

        with pytest.raises(ValueError, match="Unknown mode"):
            reconstruct_pattern(csr_pattern, mode="quick")

    def test_other_target(self, csr_pattern):
        """Reconstructions with another point count and window."""
        window = Window.rectangle(0.0, 60.0, 0.0, 60.0)
        result = reconstruct_pattern(csr_pattern, n_random=1, max_runs=5, n_points=30, window=window, seed=7)

        pattern = result.randomized[0]
        assert pattern.n_points == 30
        assert pattern.window == window

    def test_return_input(self, csr_pattern):
        """The observed pattern can be left out of the result."""
        result = reconstruct_pattern(csr_pattern, n_random=1, max_runs=2, return_input=False, seed=8)
        assert result.observed is None

        with pytest.raises(MissingObservedPatternError):
            calculate_energy(result, verbose=False)

    def test_progress(self, csr_pattern):
        """Progress is reported once per reconstruction."""
        calls = []
        reconstruct_pattern(
            csr_pattern, n_random=3, max_runs=2, seed=1,
            progress=lambda done, total: calls.append((done, total)),
        )
        assert sorted(calls) == [(1, 3), (2, 3), (3, 3)]

    def test_invalid_input(self, plot_window, csr_pattern):
        """Test input errors."""
        with pytest.raises(EmptyPatternError):
            reconstruct_pattern(Pattern(np.empty((0, 2)), plot_window))

        with pytest.raises(WindowMismatchError):
            reconstruct_pattern(csr_pattern, n_points=0)

        with pytest.raises(InvalidWeightError):
            reconstruct_pattern(csr_pattern, weights=(0.6, 0.6))

        with pytest.raises(InvalidPatternError):
            reconstruct_pattern(create_pattern([1.0], [1.0], plot_window))

        with pytest.raises(TypeError):
            reconstruct_pattern(csr_pattern.coords)

        with pytest.raises(ValueError):
            reconstruct_pattern(csr_pattern, n_random=0)


class TestReconstructMarks:
    """Test mark reconstruction at fixed locations."""

    @pytest.fixture
    def locations(self, plot_window):
        """Unmarked locations of the reconstructions."""
        return Pattern(plot_window.random_points(50, np.random.default_rng(21)), plot_window)

    def test_shuffle(self, locations, marked_pattern):
        """Marks are permuted onto the fixed locations."""
        result = reconstruct_pattern_marks(
            locations, marked_pattern, n_random=3, max_runs=20, annealing=0.0, seed=3
        )

        assert isinstance(result, MarkedReconstructionResult)
        assert result.observed is marked_pattern
        for pattern, trajectory in zip(result.randomized, result.energy_df):
            np.testing.assert_array_equal(pattern.coords, locations.coords)
            np.testing.assert_array_equal(np.sort(pattern.marks), np.sort(marked_pattern.marks))
            assert np.all(np.diff(trajectory["energy"].to_numpy()) <= 0.0)

        energy = calculate_energy(result, verbose=False)
        assert len(energy) == 3
        assert np.all(energy >= 0.0)

    def test_resampled_marks(self, plot_window, marked_pattern):
        """Different point counts resample the observed marks."""
        locations = Pattern(plot_window.random_points(20, np.random.default_rng(5)), plot_window)
        result = reconstruct_pattern_marks(locations, marked_pattern, n_random=1, max_runs=5, seed=1)

        marks = result.randomized[0].marks
        assert len(marks) == 20
        assert np.all(np.isin(marks, marked_pattern.marks))

    def test_random_walk(self, locations, marked_pattern):
        """Random walk null model starts from the nearest observed marks."""
        result = reconstruct_pattern_marks(
            locations, marked_pattern, n_random=2, max_runs=5, null_model="random_walk", seed=4
        )
        for pattern in result.randomized:
            assert np.all(np.isin(pattern.marks, marked_pattern.marks))

        with pytest.raises(ValueError, match="Unknown null_model"):
            reconstruct_pattern_marks(locations, marked_pattern, null_model="torus")

    def test_invalid_input(self, plot_window, locations, marked_pattern, csr_pattern):
        """Test input errors."""
        empty = Pattern(np.empty((0, 2)), plot_window, marks=np.empty(0))
        with pytest.raises(EmptyPatternError):
            reconstruct_pattern_marks(locations, empty)

        with pytest.raises(TypeError):
            reconstruct_pattern_marks(locations, csr_pattern)

        categorical = csr_pattern.with_marks(["oak"] * csr_pattern.n_points)
        with pytest.raises(TypeError):
            reconstruct_pattern_marks(locations, categorical)

        with pytest.raises(WindowMismatchError):
            reconstruct_pattern_marks(create_pattern([1.0], [1.0], plot_window), marked_pattern)
