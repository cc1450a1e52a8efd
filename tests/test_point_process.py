"""
Tests for point process null models.
"""

import numpy as np
import pytest

from pyshar.core import (
    EmptyPatternError,
    InvalidPatternError,
    ReconstructionResult,
    calculate_energy,
    fit_point_process,
)
from pyshar.core.point_process import fit_thomas, simulate_thomas, thomas_k
from pyshar.spatial import Pattern, create_pattern


@pytest.fixture
def clustered_pattern(plot_window):
    """Thomas process realisation with 120 points."""
    return simulate_thomas(
        plot_window, 120, kappa=0.003, scale=2.0, mu=8.0, rng=np.random.default_rng(17)
    )


class TestThomasProcess:
    """Test Thomas process helpers."""

    def test_k_function(self):
        """K of a Thomas process exceeds the Poisson K by at most 1/kappa."""
        r = np.linspace(0.0, 50.0, 20)
        k = thomas_k(r, kappa=0.01, scale=2.0)

        assert k[0] == 0.0
        assert np.all(k >= np.pi * r ** 2)
        assert k[-1] - np.pi * r[-1] ** 2 == pytest.approx(100.0, rel=1e-6)

    def test_simulation_count(self, plot_window, clustered_pattern):
        """Simulations have exactly the requested number of points."""
        assert clustered_pattern.n_points == 120
        assert np.all(plot_window.contains(clustered_pattern.x, clustered_pattern.y))

    def test_simulation_exhausted(self, plot_window):
        """Impossible point counts fail instead of looping forever."""
        with pytest.raises(RuntimeError, match="realisations"):
            simulate_thomas(plot_window, 10, kappa=1e-12, scale=1.0, mu=1.0, rng=np.random.default_rng(0))

    def test_fit(self, clustered_pattern):
        """Fitted parameters are positive and consistent with the intensity."""
        parameters = fit_thomas(clustered_pattern)

        assert set(parameters) == {"kappa", "scale", "mu"}
        assert all(value > 0.0 for value in parameters.values())
        assert parameters["mu"] * parameters["kappa"] == pytest.approx(clustered_pattern.intensity)


class TestFitPointProcess:
    """Test null-model patterns from fitted processes."""

    def test_poisson(self, csr_pattern):
        """Poisson patterns keep the observed point count."""
        result = fit_point_process(csr_pattern, n_random=5, seed=1)

        assert isinstance(result, ReconstructionResult)
        assert result.method == "fit_point_process()"
        assert result.energy_df is None
        assert not result.has_trajectories
        assert result.parameters == {}
        assert len(result.randomized) == 5
        assert all(pattern.n_points == 50 for pattern in result.randomized)

    def test_energy_recomputed(self, csr_pattern):
        """Energies of simulated patterns are computed from summary functions."""
        result = fit_point_process(csr_pattern, n_random=4, seed=2)
        energy = calculate_energy(result, verbose=False)

        assert list(energy.index) == [f"randomized_{k}" for k in range(1, 5)]
        assert np.all(energy > 0.0)

    def test_return_para(self, csr_pattern):
        """Fitted parameters are attached on request."""
        result = fit_point_process(csr_pattern, n_random=1, return_para=True, seed=3)
        assert result.parameters["lambda"] == pytest.approx(0.01)

    def test_cluster(self, clustered_pattern):
        """Cluster process patterns keep the observed point count."""
        result = fit_point_process(
            clustered_pattern, n_random=2, process="cluster", return_para=True, seed=4
        )

        assert set(result.parameters) == {"kappa", "scale", "mu"}
        assert all(pattern.n_points == 120 for pattern in result.randomized)

    def test_reproducible(self, csr_pattern):
        """Same seed, same patterns."""
        a = fit_point_process(csr_pattern, n_random=2, seed=5)
        b = fit_point_process(csr_pattern, n_random=2, seed=5, max_workers=1)
        for pa, pb in zip(a.randomized, b.randomized):
            np.testing.assert_array_equal(pa.coords, pb.coords)

    def test_return_input(self, csr_pattern):
        """The observed pattern can be left out."""
        result = fit_point_process(csr_pattern, return_input=False, seed=6)
        assert result.observed is None

    def test_invalid_input(self, plot_window, csr_pattern):
        """Test input errors."""
        with pytest.raises(EmptyPatternError):
            fit_point_process(Pattern(np.empty((0, 2)), plot_window))

        with pytest.raises(ValueError, match="Unknown process"):
            fit_point_process(csr_pattern, process="strauss")

        with pytest.raises(InvalidPatternError):
            fit_point_process(create_pattern([1.0], [1.0], plot_window), process="cluster")
