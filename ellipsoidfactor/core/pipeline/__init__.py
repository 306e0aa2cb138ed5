"""Pipeline-facing contracts for ellipsoidfactor functions."""

from ellipsoidfactor.core.pipeline.function_contracts import special_outputs

__all__ = ["special_outputs"]
