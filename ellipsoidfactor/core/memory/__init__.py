"""Memory type declarations for ellipsoidfactor functions."""

from ellipsoidfactor.core.memory.decorators import memory_types, numpy

__all__ = ["memory_types", "numpy"]
