"""
Core module for pyshar.

Contains energy evaluation, pattern reconstruction and point process null
models.
"""

from pyshar.exceptions import (
    SharError,
    InvalidWeightError,
    InvalidPatternError,
    EmptyPatternError,
    WindowMismatchError,
    MissingObservedPatternError,
    ModeMismatchError,
)
from pyshar.core.results import (
    ResultKind,
    ReconstructionResult,
    MarkedReconstructionResult,
)
from pyshar.core.energy import (
    calculate_energy,
    compute_energy,
    curve_distance,
    use_fast_mode,
    validate_weights,
)
from pyshar.core.reconstruction import (
    reconstruct_pattern,
    reconstruct_pattern_marks,
)
from pyshar.core.point_process import fit_point_process

__all__ = [
    # Errors
    "SharError",
    "InvalidWeightError",
    "InvalidPatternError",
    "EmptyPatternError",
    "WindowMismatchError",
    "MissingObservedPatternError",
    "ModeMismatchError",
    # Results
    "ResultKind",
    "ReconstructionResult",
    "MarkedReconstructionResult",
    # Energy
    "calculate_energy",
    "compute_energy",
    "curve_distance",
    "use_fast_mode",
    "validate_weights",
    # Reconstruction
    "reconstruct_pattern",
    "reconstruct_pattern_marks",
    "fit_point_process",
]
