"""
Consolidated constants for ellipsoidfactor.

This module defines the constants related to memory types, sampling defaults,
solver defaults and the identity field encoding.
"""

import math
from enum import Enum


# Memory-related constants
class MemoryType(Enum):
    NUMPY = "numpy"


VALID_MEMORY_TYPES = {mt.value for mt in MemoryType}


class OrchestratorState(Enum):
    """Lifecycle of an EllipsoidFactorOrchestrator run."""
    CREATED = "created"
    SEEDING = "seeding"
    FITTING = "fitting"
    ASSIGNING = "assigning"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class DegenerateFitReason(Enum):
    """Why a four-contact combination produced no ellipsoid."""
    NOT_AFFINELY_INDEPENDENT = "not_affinely_independent"
    ILL_CONDITIONED = "ill_conditioned"
    NOT_POSITIVE_DEFINITE = "not_positive_definite"


# Identity field
UNASSIGNED = -1
IDENTITY_DTYPE = "int32"
DESCRIPTOR_DTYPE = "float32"

# Direction sampling
DEFAULT_SPIRAL_DIRECTIONS = 30
SPIRAL_STEP_CONSTANT = 3.6
SPIRAL_COUNT_FACTOR = 3.809
CONTACTS_PER_FIT = 4
# Contacts are fitted half a ray step back, on the foreground boundary
BOUNDARY_STEP_BACK = 0.5

# Seeding
DEFAULT_RIDGE_FRACTION = 0.8
DEFAULT_RIDGE_RADIUS = 2
SEED_MASK_VALUE = 255

# Surface distance solver
DEFAULT_SOLVER_TOLERANCE = 1.0e-12
DEFAULT_SOLVER_MAX_ITERATIONS = 100

# Validation: semi-axes are reduced by half a voxel diagonal per side
AXIS_REDUCTION = math.sqrt(3.0)

# Fitting
DEFAULT_COPLANARITY_TOLERANCE = 1.0e-6
DEFAULT_CONDITION_LIMIT = 1.0e10
DEFAULT_RESIDUAL_TOLERANCE = 1.0e-6
DEFAULT_MIN_EIGENVALUE = 1.0e-12

# Assignment
DEFAULT_ASSIGNMENT_CHUNK = 512
# Voxel-ellipsoid pairs tested per inside_matrix call
DEFAULT_ASSIGNMENT_BUDGET = 1 << 18
