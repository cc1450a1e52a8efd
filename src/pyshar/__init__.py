"""
pyshar - Species-habitat associations by pattern reconstruction

Reconstructs point patterns (and marks) that resemble an observed pattern
by simulated annealing, and measures their similarity as energy.
"""

__version__ = "0.1.0"
__author__ = "pyshar Development Team"

# Core imports
from pyshar.spatial import (
    Window,
    Pattern,
    create_pattern,
    random_pattern,
    SummaryCurve,
    gest,
    pcf,
    estimate_pcf_fast,
    markcorr,
    summarize_pattern,
    relocate_point,
    swap_marks,
    torus_shift,
    translate_raster,
    random_walk_marks,
)
from pyshar.core import (
    SharError,
    InvalidWeightError,
    InvalidPatternError,
    EmptyPatternError,
    WindowMismatchError,
    MissingObservedPatternError,
    ModeMismatchError,
    ReconstructionResult,
    MarkedReconstructionResult,
    calculate_energy,
    compute_energy,
    reconstruct_pattern,
    reconstruct_pattern_marks,
    fit_point_process,
)

__all__ = [
    # Version
    "__version__",
    "__author__",
    # Spatial
    "Window",
    "Pattern",
    "create_pattern",
    "random_pattern",
    "SummaryCurve",
    "gest",
    "pcf",
    "estimate_pcf_fast",
    "markcorr",
    "summarize_pattern",
    "relocate_point",
    "swap_marks",
    "torus_shift",
    "translate_raster",
    "random_walk_marks",
    # Errors
    "SharError",
    "InvalidWeightError",
    "InvalidPatternError",
    "EmptyPatternError",
    "WindowMismatchError",
    "MissingObservedPatternError",
    "ModeMismatchError",
    # Reconstruction
    "ReconstructionResult",
    "MarkedReconstructionResult",
    "calculate_energy",
    "compute_energy",
    "reconstruct_pattern",
    "reconstruct_pattern_marks",
    "fit_point_process",
]
