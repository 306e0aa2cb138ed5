"""
Custom exceptions for the ellipsoidfactor core system.
Ensures that errors are specific and fail loudly.

A combination of contact points that cannot be turned into an ellipsoid is not an
error: it is reported as a FitResult with a DegenerateFitReason and discarded.
"""

class EllipsoidFactorError(Exception):
    """Base class for all ellipsoidfactor custom exceptions."""
    pass

class InvalidArgumentError(EllipsoidFactorError, ValueError):
    """Raised when an input is rejected before any work starts."""
    pass

class NonUniqueSolutionError(EllipsoidFactorError, ArithmeticError):
    """Raised when the closest surface point of an ellipsoid is not unique."""
    pass

class NonConvergenceWarning(UserWarning):
    """Warning issued when an iterative solver returns an unconverged estimate."""
    pass
