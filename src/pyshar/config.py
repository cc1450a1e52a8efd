"""pyshar configuration.

Grouped defaults for simulated annealing, to keep magic values
out of the algorithms. Defaults come from pyshar.constants.
"""
from dataclasses import dataclass
from typing import Optional

from pyshar.constants import (
    DEFAULT_ANNEALING,
    DEFAULT_COOLING_RATE,
    DEFAULT_MAX_RUNS,
)


@dataclass
class AnnealingConfig:
    """Simulated annealing configuration.

    A proposal that does not lower the energy is accepted with probability
    ``annealing * cooling_rate ** iteration``.
    """

    max_runs: int = DEFAULT_MAX_RUNS
    no_change: float = float('inf')
    annealing: float = DEFAULT_ANNEALING
    cooling_rate: float = DEFAULT_COOLING_RATE
    e_threshold: Optional[float] = None

    def __post_init__(self):
        """Validate configuration values."""
        if self.max_runs < 0:
            raise ValueError(f"max_runs must be non-negative, got {self.max_runs}")
        if self.no_change < 1:
            raise ValueError(f"no_change must be at least 1, got {self.no_change}")
        if not 0.0 <= self.annealing <= 1.0:
            raise ValueError(f"annealing must be within [0, 1], got {self.annealing}")
        if not 0.0 < self.cooling_rate <= 1.0:
            raise ValueError(f"cooling_rate must be within (0, 1], got {self.cooling_rate}")

    def acceptance_probability(self, iteration: int) -> float:
        """Probability to accept a proposal that does not lower the energy."""
        if self.annealing == 0.0:
            return 0.0
        return self.annealing * self.cooling_rate ** iteration
