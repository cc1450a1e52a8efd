"""
Spatial primitives of pyshar.

This module provides:
- Observation windows (rectangles and polygons) with edge corrections
- Point patterns with optional marks
- Summary functions: G(r), g(r), K(r) and the mark correlation function
- Randomization primitives for null models

Example
-------
>>> import numpy as np
>>> from pyshar.spatial import Window, random_pattern, summarize_pattern
>>>
>>> window = Window.rectangle(0, 100, 0, 100)
>>> pattern = random_pattern(50, window, np.random.default_rng(42))
>>> g_curve, pcf_curve = summarize_pattern(pattern)
"""

from pyshar.spatial.window import Window
from pyshar.spatial.pattern import (
    Pattern,
    create_pattern,
    random_pattern,
)
from pyshar.spatial.summary import (
    MarkSummary,
    PatternSummary,
    SummaryCurve,
    estimate_pcf_fast,
    gest,
    kest,
    markcorr,
    pcf,
    radius_grid,
    summarize_pattern,
)
from pyshar.spatial.randomization import (
    random_walk_marks,
    relocate_point,
    swap_marks,
    torus_shift,
    translate_raster,
)

__all__ = [
    # Geometry
    "Window",
    "Pattern",
    "create_pattern",
    "random_pattern",
    # Summary functions
    "SummaryCurve",
    "radius_grid",
    "gest",
    "pcf",
    "kest",
    "estimate_pcf_fast",
    "markcorr",
    "summarize_pattern",
    "PatternSummary",
    "MarkSummary",
    # Randomization
    "relocate_point",
    "swap_marks",
    "torus_shift",
    "translate_raster",
    "random_walk_marks",
]
