"""
Orchestrator module for ellipsoidfactor.

The orchestrator is responsible for:
1. Extracting seed points from the ridge of the distance transform
2. Searching every seed for valid ellipsoids in parallel
3. Assigning voxels to ellipsoids slice by slice
4. Painting the per-voxel descriptor images
"""

from ellipsoidfactor.core.orchestrator.orchestrator import EllipsoidFactorOrchestrator, EllipsoidFactorResult

__all__ = [
    'EllipsoidFactorOrchestrator',
    'EllipsoidFactorResult',
]
