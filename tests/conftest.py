"""
Shared fixtures for pyshar tests.
"""

import numpy as np
import pytest

from pyshar.spatial import Window, random_pattern


@pytest.fixture
def unit_square():
    """Unit square window."""
    return Window.rectangle(0.0, 1.0, 0.0, 1.0)


@pytest.fixture
def plot_window():
    """100 x 50 rectangular study plot."""
    return Window.rectangle(0.0, 100.0, 0.0, 50.0)


@pytest.fixture
def l_window():
    """L-shaped polygonal window of area 3."""
    return Window.from_polygon([(0, 0), (2, 0), (2, 1), (1, 1), (1, 2), (0, 2)])


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(20240101)


@pytest.fixture
def csr_pattern(plot_window):
    """50 uniformly distributed points in the study plot."""
    return random_pattern(50, plot_window, np.random.default_rng(42))


@pytest.fixture
def marked_pattern(csr_pattern):
    """csr_pattern with positive numeric marks (e.g. stem diameters)."""
    marks = np.random.default_rng(7).uniform(5.0, 50.0, size=csr_pattern.n_points)
    return csr_pattern.with_marks(marks)
