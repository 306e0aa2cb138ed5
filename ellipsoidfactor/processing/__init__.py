"""
Processing backends for ellipsoidfactor.

The ellipsoid backend holds the geometry and search primitives; the analysis
backend exposes them as a pipeline function with materialised outputs.
"""
