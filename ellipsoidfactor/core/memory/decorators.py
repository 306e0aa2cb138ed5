"""
Memory type declaration decorators for ellipsoidfactor.

This module provides decorators for explicitly declaring the memory interface
of pure functions so that pipeline hosts can dispatch on the declared
input_memory_type and output_memory_type attributes.

Only the NumPy backend exists: every ellipsoid computation runs on CPU arrays.
"""

import logging
from typing import Any, Callable, Optional, TypeVar

from ellipsoidfactor.constants.constants import VALID_MEMORY_TYPES

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def memory_types(*, input_type: str, output_type: str) -> Callable[[F], F]:
    """
    Decorator that explicitly declares the memory types for a function's input and output.

    Args:
        input_type: The memory type for the function's input (e.g., "numpy")
        output_type: The memory type for the function's output (e.g., "numpy")

    Returns:
        A decorator function that sets the memory type attributes

    Raises:
        ValueError: If input_type or output_type is not a supported memory type
    """
    # Validate memory types at decoration time, not runtime
    if not input_type:
        raise ValueError("input_type must be explicitly declared.")

    if not output_type:
        raise ValueError("output_type must be explicitly declared.")

    if input_type not in VALID_MEMORY_TYPES:
        raise ValueError(
            f"input_type '{input_type}' is not supported. "
            f"Supported types are: {', '.join(sorted(VALID_MEMORY_TYPES))}"
        )

    if output_type not in VALID_MEMORY_TYPES:
        raise ValueError(
            f"output_type '{output_type}' is not supported. "
            f"Supported types are: {', '.join(sorted(VALID_MEMORY_TYPES))}"
        )

    def decorator(func: F) -> F:
        # Declared memory types are immutable once set
        if hasattr(func, 'input_memory_type') and func.input_memory_type != input_type:
            raise ValueError(
                f"Function '{func.__name__}' already has input_memory_type "
                f"'{func.input_memory_type}', cannot change to '{input_type}'."
            )

        if hasattr(func, 'output_memory_type') and func.output_memory_type != output_type:
            raise ValueError(
                f"Function '{func.__name__}' already has output_memory_type "
                f"'{func.output_memory_type}', cannot change to '{output_type}'."
            )

        func.input_memory_type = input_type
        func.output_memory_type = output_type

        # Return the function unchanged (no wrapper)
        return func

    return decorator


def numpy(
    func: Optional[F] = None,
    *,
    input_type: str = "numpy",
    output_type: str = "numpy"
) -> Any:
    """
    Decorator that declares a function as operating on numpy arrays.

    This is a convenience wrapper around memory_types with numpy defaults. Unlike
    intensity filters, shape analysis changes the dtype of its output (binary in,
    float descriptors out), so no dtype-preserving wrapper is applied.

    Args:
        func: The function to decorate (optional)
        input_type: The memory type for the function's input (default: "numpy")
        output_type: The memory type for the function's output (default: "numpy")

    Returns:
        The decorated function with memory type attributes set
    """
    decorator = memory_types(input_type=input_type, output_type=output_type)

    # Handle both @numpy and @numpy(input_type=..., output_type=...) forms
    if func is None:
        return decorator

    return decorator(func)
