"""
Function-level contract decorators for pipeline hosts.

This module provides the decorator for declaring special output contracts at the
function level: named side results (tables, summaries) returned after the main
image, each optionally paired with a materialization function that writes it out.
"""

from typing import Any, Callable, TypeVar

F = TypeVar('F', bound=Callable[..., Any])


def special_outputs(*output_specs) -> Callable[[F], F]:
    """
    Decorator that marks a function as producing special outputs.

    Args:
        *output_specs: Either strings or (string, materialization_function) tuples
                      - String only: "seeds" - no materialization function
                      - Tuple: ("ellipsoids", materialize_ellipsoid_table) - with materialization

    Examples:
        @special_outputs("seeds")  # String only
        def find_seeds(image):
            return image, seeds

        @special_outputs(("ellipsoids", materialize_ellipsoid_table))  # With materialization
        def ellipsoid_factor(image):
            return ef_image, ellipsoid_records
    """
    def decorator(func: F) -> F:
        special_outputs_info = {}
        output_keys = []

        for spec in output_specs:
            if isinstance(spec, str):
                # String only - no materialization function
                output_keys.append(spec)
                special_outputs_info[spec] = None
            elif isinstance(spec, tuple) and len(spec) == 2:
                # (key, materialization_function) tuple
                key, mat_func = spec
                if not isinstance(key, str):
                    raise ValueError(f"Special output key must be string, got {type(key)}: {key}")
                if not callable(mat_func):
                    raise ValueError(f"Materialization function must be callable, got {type(mat_func)}: {mat_func}")
                output_keys.append(key)
                special_outputs_info[key] = mat_func
            else:
                raise ValueError(f"Invalid special output spec: {spec}. Must be string or (string, function) tuple.")

        # Keys keep declaration order: it matches the order of the returned tuple
        func.__special_outputs__ = tuple(output_keys)
        func.__materialization_functions__ = special_outputs_info
        return func
    return decorator
