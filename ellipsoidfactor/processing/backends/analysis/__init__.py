"""Pipeline-level analysis functions."""

from ellipsoidfactor.processing.backends.analysis.ellipsoid_factor_cpu import (
    EllipsoidDescriptor, EllipsoidRecord, ellipsoid_factor,
    materialize_ellipsoid_summary, materialize_ellipsoid_table
)

__all__ = [
    "EllipsoidDescriptor", "EllipsoidRecord", "ellipsoid_factor",
    "materialize_ellipsoid_summary", "materialize_ellipsoid_table",
]
