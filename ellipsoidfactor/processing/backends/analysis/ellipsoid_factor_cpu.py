"""
CPU-based ellipsoid factor analysis for ellipsoidfactor.

This module exposes the whole ellipsoid factor run as a single pipeline
function over a binary (Z, Y, X) image stack. The main output is one painted
descriptor image; the ellipsoid table and run summary are special outputs that
are written to CSV and JSON by their materialization functions.
"""

import json
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd

from ellipsoidfactor.core.config import GlobalEllipsoidFactorConfig, SamplingConfig, SeedingConfig
from ellipsoidfactor.core.memory.decorators import numpy as numpy_func
from ellipsoidfactor.core.orchestrator.orchestrator import EllipsoidFactorOrchestrator, EllipsoidFactorResult
from ellipsoidfactor.core.pipeline.function_contracts import special_outputs

logger = logging.getLogger(__name__)


class EllipsoidDescriptor(Enum):
    """Per-voxel descriptor painted into the main output."""
    ELLIPSOID_FACTOR = "ellipsoid_factor"
    VOLUME = "volume"
    A_TO_B = "a_to_b"
    B_TO_C = "b_to_c"
    IDENTITY = "identity"
    SEED_POINTS = "seed_points"


@dataclass
class EllipsoidRecord:
    """One row of the ellipsoid table, ranked by descending volume."""
    rank: int
    centroid_x: float
    centroid_y: float
    centroid_z: float
    a: float
    b: float
    c: float
    volume: float
    ellipsoid_factor: float
    a_to_b: float
    b_to_c: float
    assigned_voxels: int


def _base_path(path: str) -> str:
    return path.replace('.pkl', '')


def materialize_ellipsoid_table(data: List[EllipsoidRecord], path: str) -> str:
    """Write the ellipsoid table as CSV next to path and return the CSV path."""
    csv_path = f"{_base_path(path)}_ellipsoids.csv"
    logger.info(f"🔬 ELLIPSOID_MATERIALIZE: Writing {len(data) if data else 0} ellipsoids to {csv_path}")

    Path(csv_path).parent.mkdir(parents=True, exist_ok=True)
    columns = list(EllipsoidRecord.__dataclass_fields__)
    df = pd.DataFrame([asdict(record) for record in data], columns=columns)
    df.to_csv(csv_path, index=False)
    return csv_path


def materialize_ellipsoid_summary(data: Dict[str, Any], path: str) -> str:
    """Write the run summary as JSON next to path and return the JSON path."""
    json_path = f"{_base_path(path)}_summary.json"
    logger.info(f"🔬 ELLIPSOID_MATERIALIZE: Writing summary to {json_path}")

    Path(json_path).parent.mkdir(parents=True, exist_ok=True)
    Path(json_path).write_text(json.dumps(data, indent=2, default=str))
    return json_path


def _ellipsoid_records(result: EllipsoidFactorResult) -> List[EllipsoidRecord]:
    assigned = result.identity[result.identity >= 0]
    voxel_counts = np.bincount(assigned, minlength=len(result.ellipsoids))

    records = []
    for rank, ellipsoid in enumerate(result.ellipsoids):
        x, y, z = (float(v) for v in ellipsoid.centroid)
        records.append(EllipsoidRecord(
            rank=rank,
            centroid_x=x,
            centroid_y=y,
            centroid_z=z,
            a=ellipsoid.a,
            b=ellipsoid.b,
            c=ellipsoid.c,
            volume=ellipsoid.volume,
            ellipsoid_factor=ellipsoid.ellipsoid_factor,
            a_to_b=ellipsoid.a_to_b,
            b_to_c=ellipsoid.b_to_c,
            assigned_voxels=int(voxel_counts[rank]),
        ))
    return records


@numpy_func
@special_outputs(("ellipsoids", materialize_ellipsoid_table), ("ellipsoid_summary", materialize_ellipsoid_summary))
def ellipsoid_factor(
    image_stack: np.ndarray,
    # Seeding parameters
    ridge_fraction: float = 0.8,                                   # Share of the ridge maximum a seed must exceed
    ridge_radius: int = 2,                                         # Ball radius for the ridge morphology
    # Sampling parameters
    n_directions: int = 30,                                        # Spiral directions for rays and validation
    # Execution parameters
    num_workers: int = 1,
    use_threading: bool = True,
    # Output parameters
    output_descriptor: EllipsoidDescriptor = EllipsoidDescriptor.ELLIPSOID_FACTOR
) -> Tuple[np.ndarray, List[EllipsoidRecord], Dict[str, Any]]:
    """
    Compute the ellipsoid factor of a binary image stack.

    Args:
        image_stack: Binary 3D array (Z, Y, X), non-zero is foreground
        ridge_fraction: Ridge threshold as a fraction of the ridge maximum
        ridge_radius: Radius of the ball used for the ridge field
        n_directions: Number of spiral directions
        num_workers: Worker count for the seed and slice phases
        use_threading: Use threads rather than processes for the workers
        output_descriptor: Descriptor painted into the returned image

    Returns:
        output_stack: Painted descriptor image (Z, Y, X), NaN where unassigned
            (int32 labels for IDENTITY, uint8 mask for SEED_POINTS)
        ellipsoids: (Special output) EllipsoidRecord per ellipsoid, largest first
        ellipsoid_summary: (Special output) run statistics and parameters
    """
    if image_stack.ndim != 3:
        raise ValueError(f"Expected 3D image stack, got {image_stack.ndim}D")

    config = GlobalEllipsoidFactorConfig(
        num_workers=num_workers,
        use_threading=use_threading,
        seeding=SeedingConfig(ridge_fraction=ridge_fraction, ridge_radius=ridge_radius),
        sampling=SamplingConfig(n_directions=n_directions),
    )
    result = EllipsoidFactorOrchestrator(global_config=config).run(image_stack)

    if output_descriptor is EllipsoidDescriptor.IDENTITY:
        output_stack = result.identity
    elif output_descriptor is EllipsoidDescriptor.SEED_POINTS:
        output_stack = result.seed_mask
    else:
        output_stack = getattr(result, output_descriptor.value)

    summary = result.summary()
    summary["parameters"] = {
        "ridge_fraction": ridge_fraction,
        "ridge_radius": ridge_radius,
        "n_directions": n_directions,
        "output_descriptor": output_descriptor.value,
    }
    return output_stack, _ellipsoid_records(result), summary
