"""
Experiment-design thresholds and numerical tolerances for sample preparation.

Every threshold the classifiers, solvers and planner compare against lives
here so the API can report the exact values in use (GET /api/constants).

Units: masses in mg at the interface (grams internally), areas in cm^2,
edge steps and mass attenuation coefficients in cm^2/g, energies in eV.

IMPORTANT: No unicode characters allowed in this file (Windows charmap constraint).
"""

# Milligrams per gram
MG_PER_G = 1000.0

# Transmission window on the achieved edge step (dimensionless delta mu*t)
EDGE_STEP_MIN = 0.2
EDGE_STEP_MAX = 2.0

# Ceiling on total absorption just above the edge
ABSORPTION_MAX = 4.0

# Minimum retained fluorescence signal (percent of the infinitely dilute case)
FLUORESCENCE_MIN_PERCENT = 90.0

# Two edge steps closer than this make the mixing system degenerate
DEGENERATE_EPS = 1e-12

# Solved masses below -MASS_TOLERANCE_MG are physically invalid
MASS_TOLERANCE_MG = 1e-6

# Reachable edge-step domain narrower than this is treated as collapsed
DOMAIN_EPS = 1e-6

# Target edge-step bisection
BISECT_MAX_ITERATIONS = 80
BISECT_TOLERANCE = 1e-9

# Threshold solver defaults
THRESHOLD_TARGET_TOLERANCE = 0.1
THRESHOLD_VALUE_TOLERANCE = 1e-6
THRESHOLD_MAX_ITERATIONS = 80
THRESHOLD_SAMPLE_POINTS = 64
THRESHOLD_MIN_SAMPLE_POINTS = 8
THRESHOLD_MAX_SAMPLE_POINTS = 1024

# Energy offset either side of the edge for edge steps
EDGE_OFFSET_EV = 10.0

# Planner dilution search: smallest sample mass fraction tried
MIN_SAMPLE_FRACTION = 1e-4

# Planner thickness search: bounds and expansion limits (cm)
MIN_THICKNESS_CM = 1e-6
MIN_THICKNESS_SEED_CM = 1e-4
MAX_THICKNESS_CM = 5.0
MAX_THICKNESS_DOUBLINGS = 16

# Planner solver settings (finer than the generic defaults)
PLANNER_SAMPLE_POINTS = 96
PLANNER_DILUTION_VALUE_TOLERANCE = 1e-5

# Energy grid cap for suppression curves
MAX_ENERGY_POINTS = 30000

# Gas mixture: default fraction of a newly added gas, and the floor on the
# existing total used when rescaling
DEFAULT_NEW_GAS_FRACTION = 0.1
GAS_TOTAL_FLOOR = 0.001

# Ion chamber: reference pressure for the effective-length scaling (torr)
REFERENCE_PRESSURE_TORR = 760.0
