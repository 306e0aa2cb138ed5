"""
ellipsoidfactor: local shape analysis of binary volumes with maximal inscribed ellipsoids.

This module provides the public API for ellipsoidfactor. It re-exports only the
intended public symbols and does not trigger any heavy computation on import.
"""

import logging

__version__ = "0.1.0"

# Set up basic logging configuration if none exists
# This ensures INFO level logging works when used from a plain script
def _ensure_basic_logging():
    """Ensure basic logging is configured if no configuration exists."""
    root_logger = logging.getLogger()

    # Only configure if no handlers exist and level is too high
    if not root_logger.handlers and root_logger.level > logging.INFO:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

# Configure basic logging on import
_ensure_basic_logging()

from ellipsoidfactor.core.config import GlobalEllipsoidFactorConfig, get_default_global_config
from ellipsoidfactor.core.orchestrator import EllipsoidFactorOrchestrator, EllipsoidFactorResult
from ellipsoidfactor.processing.backends.ellipsoid.ellipsoid import Ellipsoid

__all__ = [
    # Entry points
    "EllipsoidFactorOrchestrator",
    "EllipsoidFactorResult",

    # Key types
    "Ellipsoid",
    "GlobalEllipsoidFactorConfig",
    "get_default_global_config",
]
