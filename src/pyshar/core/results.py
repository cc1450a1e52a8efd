"""
Result containers of pattern reconstructions.

Two variants share one base class and are told apart by an explicit ``kind``
discriminant:
- ReconstructionResult: unmarked reconstructions (ResultKind.PATTERN)
- MarkedReconstructionResult: mark reconstructions at fixed point
  locations (ResultKind.MARKS)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, List, Optional

import numpy as np
import pandas as pd

from pyshar.spatial.pattern import Pattern


class ResultKind(Enum):
    PATTERN = "pattern"
    MARKS = "marks"


def energy_frame(trajectory) -> pd.DataFrame:
    """Energy trajectory as DataFrame with columns i (iteration) and energy."""
    frame = pd.DataFrame(list(trajectory), columns=["i", "energy"])
    return frame.astype({"i": int, "energy": float})


@dataclass
class BaseReconstructionResult:
    """Observed pattern plus its randomized reconstructions.

    Attributes
    ----------
    observed : Pattern, optional
        Observed pattern; None when it was not returned with the result
    randomized : list of Pattern
        Reconstructed patterns, one per randomization
    energy_df : list of pd.DataFrame, optional
        Energy trajectory (columns i, energy) of every reconstruction
    stop_criterion : list of str
        Why each reconstruction stopped ('max_runs', 'no_change',
        'e_threshold'), empty when not produced by annealing
    method : str
        Method that produced the randomizations
    parameters : dict
        Additional parameters (e.g. fitted point process parameters)
    """

    kind: ClassVar[ResultKind]

    observed: Optional[Pattern]
    randomized: List[Pattern]
    energy_df: Optional[List[pd.DataFrame]] = None
    stop_criterion: List[str] = field(default_factory=list)
    method: str = "reconstruct_pattern()"
    parameters: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        """Validate result data."""
        if self.observed is not None and not isinstance(self.observed, Pattern):
            raise TypeError(f"observed must be a Pattern, got {type(self.observed).__name__}")
        self.randomized = list(self.randomized)
        for pattern in self.randomized:
            if not isinstance(pattern, Pattern):
                raise TypeError(
                    f"randomized patterns must be Pattern objects, got {type(pattern).__name__}"
                )
        if self.energy_df is not None:
            self.energy_df = list(self.energy_df)
            if len(self.energy_df) != len(self.randomized):
                raise ValueError(
                    f"energy_df length ({len(self.energy_df)}) != "
                    f"number of randomized patterns ({len(self.randomized)})"
                )

    def __len__(self) -> int:
        return len(self.randomized)

    @property
    def n_random(self) -> int:
        return len(self.randomized)

    @property
    def names(self) -> List[str]:
        return [f"randomized_{k}" for k in range(1, self.n_random + 1)]

    @property
    def has_trajectories(self) -> bool:
        return self.energy_df is not None

    def final_energies(self) -> Optional[np.ndarray]:
        """Last recorded energy of every trajectory, None without trajectories."""
        if self.energy_df is None:
            return None
        return np.array(
            [df["energy"].iloc[-1] if len(df) > 0 else np.nan for df in self.energy_df]
        )

    def to_frame(self) -> pd.DataFrame:
        """All point locations in one table with a 'pattern' column."""
        frames = []
        if self.observed is not None:
            frames.append(self.observed.to_frame().assign(pattern="observed"))
        for name, pattern in zip(self.names, self.randomized):
            frames.append(pattern.to_frame().assign(pattern=name))
        if not frames:
            return pd.DataFrame(columns=["x", "y", "pattern"])
        return pd.concat(frames, ignore_index=True)

    def summary(self) -> Dict[str, object]:
        """Short description of the result."""
        info = {
            "kind": self.kind.value,
            "method": self.method,
            "n_random": self.n_random,
            "observed": self.observed is not None,
        }
        energies = self.final_energies()
        if energies is not None:
            info["mean_energy"] = float(np.nanmean(energies)) if len(energies) else np.nan
            info["mean_iterations"] = (
                float(np.mean([len(df) for df in self.energy_df])) if self.energy_df else 0.0
            )
        if self.stop_criterion:
            counts = pd.Series(self.stop_criterion).value_counts()
            info["stop_criterion"] = {str(k): int(v) for k, v in counts.items()}
        if self.parameters:
            info["parameters"] = dict(self.parameters)
        return info


@dataclass
class ReconstructionResult(BaseReconstructionResult):
    """Reconstructions of an unmarked pattern."""

    kind: ClassVar[ResultKind] = ResultKind.PATTERN


@dataclass
class MarkedReconstructionResult(BaseReconstructionResult):
    """Mark reconstructions; all randomized patterns share their locations."""

    kind: ClassVar[ResultKind] = ResultKind.MARKS
    method: str = "reconstruct_pattern_marks()"

    def __post_init__(self):
        """Validate marked result data."""
        super().__post_init__()
        for pattern in self.randomized:
            if not pattern.is_marked:
                raise ValueError("Randomized patterns of a marked result must carry marks")
        if len(self.randomized) > 1:
            reference = self.randomized[0].coords
            for pattern in self.randomized[1:]:
                if pattern.coords.shape != reference.shape or not np.array_equal(
                    pattern.coords, reference
                ):
                    raise ValueError("Marked reconstructions must share point locations")
