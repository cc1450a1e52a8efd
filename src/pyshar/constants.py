"""Numerical constants and defaults for point pattern reconstruction.

This module centralizes magic numbers used throughout pyshar (radius grid,
estimator bandwidths, energy weights, annealing defaults) so that estimators,
the energy evaluator and the reconstructor agree on them.
"""

# ============================================================================
# RADIUS GRID
# ============================================================================

# Number of samples of every summary curve (r_0 = 0 ... r_max)
N_RADII = 250

# Rule of thumb for the maximum radius of K-type statistics
RMAX_SHORTSIDE_FRACTION = 0.25  # Ripley: a quarter of the shorter side
RMAX_EXPECTED_POINTS = 1000  # sqrt(1000 / (pi * lambda))

# ============================================================================
# ESTIMATORS
# ============================================================================

# Stoyan's rule for the kernel half-width: h = STOYAN / sqrt(lambda)
STOYAN_COEFFICIENT = 0.15

# Smoothing of the fast pair correlation function (R smooth.spline scale)
DEFAULT_SPAR = 0.5
SPAR_BASE = 256.0
SPAR_RATIO = 1e-5  # Penalty ratio on a radius axis rescaled to [0, 1]

# Number of pairs evaluated per kernel block
KERNEL_CHUNK_SIZE = 20000

# Samples used to interpolate eroded areas / set covariance of polygons
EROSION_SAMPLES = 128
SET_COVARIANCE_SAMPLES = 65

# Smallest inside fraction allowed for isotropic edge weights
MIN_INSIDE_FRACTION = 1e-3

# ============================================================================
# ENERGY
# ============================================================================

DEFAULT_WEIGHTS = (0.5, 0.5)  # Gest(r), pcf(r)

# Above this number of points summary functions are estimated the fast way
DEFAULT_COMP_FAST = 1000

# ============================================================================
# SIMULATED ANNEALING
# ============================================================================

DEFAULT_MAX_RUNS = 1000
DEFAULT_ANNEALING = 0.01  # Initial probability to accept a worse proposal
DEFAULT_COOLING_RATE = 0.995  # Geometric decay of that probability

# ============================================================================
# POINT PROCESS FITTING
# ============================================================================

CONTRAST_EXPONENT = 0.25  # Minimum contrast exponent on K(r)
MAX_SIMULATION_ATTEMPTS = 100

# ============================================================================
# NUMERICAL TOLERANCE
# ============================================================================

EPSILON = 1e-10
