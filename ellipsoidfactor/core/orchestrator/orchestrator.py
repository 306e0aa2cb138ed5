"""
Orchestrator for ellipsoid factor runs.

A run has two parallel phases separated by a single merge:

1. Per-seed search: every seed grows its own list of valid ellipsoids. Lists are
   merged in seed order and stable-sorted by descending volume.
2. Per-slice assignment: every z-slice of the identity field is labelled
   independently against the sorted ellipsoids and stitched back together.

Both phases run on a ThreadPoolExecutor or ProcessPoolExecutor chosen by
GlobalEllipsoidFactorConfig.use_threading, or inline when num_workers is 1.
A threading.Event passed to run() cancels the remaining work; completed work is
returned with partial=True.
"""

import concurrent.futures
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ellipsoidfactor.constants.constants import IDENTITY_DTYPE, SEED_MASK_VALUE, UNASSIGNED, OrchestratorState
from ellipsoidfactor.core.config import GlobalEllipsoidFactorConfig, get_default_global_config
from ellipsoidfactor.core.exceptions import InvalidArgumentError
from ellipsoidfactor.processing.backends.ellipsoid.assignment import EllipsoidArrays, assign_slice
from ellipsoidfactor.processing.backends.ellipsoid.directions import generate_directions, seeding_directions
from ellipsoidfactor.processing.backends.ellipsoid.ellipsoid import Ellipsoid
from ellipsoidfactor.processing.backends.ellipsoid.fitting import find_ellipsoids_for_seed, sort_by_volume
from ellipsoidfactor.processing.backends.ellipsoid.painting import (
    count_assigned_voxels, ellipsoid_descriptors, filling_percentage, paint_labeled_regions
)
from ellipsoidfactor.processing.backends.ellipsoid.seeds import (
    compute_ridge_field, extract_seed_points, seed_point_mask
)
from ellipsoidfactor.processing.backends.ellipsoid.voxel_grid import VoxelGrid, to_voxel_index

logger = logging.getLogger(__name__)


def _configure_worker_logging(log_file_base: str):
    """
    Configure logging for a worker process.

    Called once per worker process when it starts; each worker writes its own
    log file named after its PID and start time.

    Args:
        log_file_base: Base path for worker log files
    """
    import os
    import time

    worker_pid = os.getpid()
    worker_id = f"{worker_pid}_{int(time.time() * 1000000)}"
    worker_log_file = f"{log_file_base}_worker_{worker_id}.log"

    # Replace inherited handlers so every record ends up in the worker file
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    file_handler = logging.FileHandler(worker_log_file)
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    root_logger.addHandler(file_handler)
    root_logger.setLevel(logging.INFO)
    logging.getLogger("ellipsoidfactor").setLevel(logging.INFO)

    worker_logger = logging.getLogger("ellipsoidfactor.worker")
    worker_logger.info(f"🔥 WORKER: Process {worker_pid} (ID: {worker_id}) logging to {worker_log_file}")


def _search_seed(grid, seed, directions, sample_directions, fitting, cancel_event=None) -> Optional[List[Ellipsoid]]:
    """Worker task for one seed; None means it was skipped after cancellation."""
    if cancel_event is not None and cancel_event.is_set():
        return None
    return find_ellipsoids_for_seed(grid, seed, directions, sample_directions, fitting)


def _label_slice(grid, arrays, z, chunk, budget, cancel_event=None) -> Optional[np.ndarray]:
    """Worker task for one z-slice; None means it was skipped after cancellation."""
    if cancel_event is not None and cancel_event.is_set():
        return None
    return assign_slice(grid, arrays, z, chunk, budget)


@dataclass
class EllipsoidFactorResult:
    """Everything produced by one run."""
    ellipsoids: List[Ellipsoid]
    identity: np.ndarray
    ellipsoid_factor: np.ndarray
    volume: np.ndarray
    a_to_b: np.ndarray
    b_to_c: np.ndarray
    seeds: List[Tuple[float, float, float]]
    seed_mask: np.ndarray
    partial: bool = False
    foreground_voxels: int = 0
    filling_percentage: float = 0.0
    assigned_voxels: int = field(init=False)

    def __post_init__(self):
        self.assigned_voxels = count_assigned_voxels(self.identity)

    def summary(self) -> Dict[str, Any]:
        """Run statistics as plain Python values."""
        ef = self.ellipsoid_factor[np.isfinite(self.ellipsoid_factor)]
        return {
            "seed_points": len(self.seeds),
            "ellipsoids": len(self.ellipsoids),
            "foreground_voxels": self.foreground_voxels,
            "assigned_voxels": self.assigned_voxels,
            "filling_percentage": self.filling_percentage,
            "median_ellipsoid_factor": float(np.median(ef)) if ef.size else None,
            "largest_volume": self.ellipsoids[0].volume if self.ellipsoids else None,
            "partial": self.partial,
        }


class EllipsoidFactorOrchestrator:
    """
    Runs seeding, fitting, assignment and painting for one binary volume.

    The configuration is fixed at construction; run() can be called repeatedly.
    """

    def __init__(self, *, global_config: Optional[GlobalEllipsoidFactorConfig] = None):
        if global_config is None:
            self.global_config = get_default_global_config()
            logger.info("EllipsoidFactorOrchestrator using default global configuration.")
        else:
            self.global_config = global_config

        if self.global_config.assignment_chunk < 1:
            raise InvalidArgumentError(
                f"assignment_chunk must be at least 1, got {self.global_config.assignment_chunk}"
            )
        if self.global_config.assignment_budget < 1:
            raise InvalidArgumentError(
                f"assignment_budget must be at least 1, got {self.global_config.assignment_budget}"
            )
        # Fail on a bad direction count before any volume is touched
        generate_directions(self.global_config.sampling.n_directions)

        self._state: OrchestratorState = OrchestratorState.CREATED

    @property
    def state(self) -> OrchestratorState:
        """Get the current orchestrator state."""
        return self._state

    def _create_executor(self, max_workers: int, log_file_base: Optional[str]) -> concurrent.futures.Executor:
        executor_type = "ThreadPoolExecutor" if self.global_config.use_threading else "ProcessPoolExecutor"
        logger.info(f"🔥 ORCHESTRATOR: Creating {executor_type} with {max_workers} workers")

        if self.global_config.use_threading:
            return concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)
        if log_file_base:
            logger.info(f"🔥 WORKER LOGGING: Configuring worker processes with log base: {log_file_base}")
            return concurrent.futures.ProcessPoolExecutor(
                max_workers=max_workers,
                initializer=_configure_worker_logging,
                initargs=(log_file_base,)
            )
        return concurrent.futures.ProcessPoolExecutor(max_workers=max_workers)

    def _run_tasks(
        self,
        phase: str,
        worker: Callable[..., Any],
        task_args: Sequence[tuple],
        cancel_event: threading.Event,
        log_file_base: Optional[str]
    ) -> Dict[int, Any]:
        """
        Run worker(*args, cancel_event) for every task and collect results by task index.

        Tasks that were skipped or cancelled are absent from the returned dict.
        """
        results: Dict[int, Any] = {}
        max_workers = max(1, min(self.global_config.num_workers, len(task_args)))

        if max_workers == 1:
            for index, args in enumerate(task_args):
                if cancel_event.is_set():
                    break
                results[index] = worker(*args)
            return results

        # Events cannot cross process boundaries; processes are cancelled from here instead
        shared_event = cancel_event if self.global_config.use_threading else None

        with self._create_executor(max_workers, log_file_base) as executor:
            future_to_index = {
                executor.submit(worker, *args, shared_event): index
                for index, args in enumerate(task_args)
            }
            logger.info(f"🔥 ORCHESTRATOR: {len(future_to_index)} {phase} tasks submitted")

            cancelling = False
            for future in concurrent.futures.as_completed(future_to_index):
                index = future_to_index[future]
                if future.cancelled():
                    continue
                try:
                    result = future.result()
                except Exception as exc:
                    logger.error(f"🔥 ORCHESTRATOR ERROR: {phase} task {index} failed: {exc}", exc_info=True)
                    raise
                if result is not None:
                    results[index] = result

                if cancel_event.is_set() and not cancelling:
                    cancelling = True
                    cancelled = sum(pending.cancel() for pending in future_to_index)
                    logger.info(f"🔥 ORCHESTRATOR: Cancellation requested, {cancelled} {phase} tasks dropped")

        return results

    def run(
        self,
        volume: np.ndarray,
        ridge: Optional[np.ndarray] = None,
        seeds: Optional[Sequence[Tuple[float, float, float]]] = None,
        cancel_event: Optional[threading.Event] = None,
        log_file_base: Optional[str] = None
    ) -> EllipsoidFactorResult:
        """
        Compute the ellipsoid factor of a binary volume.

        Args:
            volume: Binary (Z, Y, X) array, non-zero is foreground
            ridge: Precomputed ridge field; computed from volume when omitted
            seeds: Explicit (x, y, z) seed points; extracted from the ridge when omitted
            cancel_event: Set to stop the run early and keep completed work
            log_file_base: Base path for per-worker log files (process pool only)

        Returns:
            EllipsoidFactorResult with partial=True if any work was cancelled
        """
        grid = VoxelGrid(volume)
        cancel_event = cancel_event or threading.Event()
        config = self.global_config

        try:
            self._state = OrchestratorState.SEEDING
            if seeds is None:
                if ridge is None:
                    ridge = compute_ridge_field(volume, config.seeding.ridge_radius)
                seeds = extract_seed_points(volume, ridge, config.seeding.ridge_fraction)
                seed_mask = seed_point_mask(volume, ridge, config.seeding.ridge_fraction)
            else:
                seeds = [tuple(float(v) for v in seed) for seed in seeds]
                seed_mask = _mask_from_seeds(grid, seeds)

            self._state = OrchestratorState.FITTING
            ellipsoids, seeds_done = self._find_ellipsoids(grid, seeds, cancel_event, log_file_base)

            self._state = OrchestratorState.ASSIGNING
            identity, slices_done = self._assign(grid, ellipsoids, cancel_event, log_file_base)
        except Exception as e:
            self._state = OrchestratorState.FAILED
            logger.error(f"Ellipsoid factor run failed: {e}")
            raise

        depth = grid.mask.shape[0]
        partial = seeds_done < len(seeds) or slices_done < depth
        descriptors = ellipsoid_descriptors(ellipsoids)
        result = EllipsoidFactorResult(
            ellipsoids=ellipsoids,
            identity=identity,
            ellipsoid_factor=paint_labeled_regions(identity, descriptors["ellipsoid_factor"]),
            volume=paint_labeled_regions(identity, descriptors["volume"]),
            a_to_b=paint_labeled_regions(identity, descriptors["a_to_b"]),
            b_to_c=paint_labeled_regions(identity, descriptors["b_to_c"]),
            seeds=list(seeds),
            seed_mask=seed_mask,
            partial=partial,
            foreground_voxels=int(np.count_nonzero(grid.mask)),
            filling_percentage=filling_percentage(identity, grid.mask),
        )

        self._state = OrchestratorState.CANCELLED if partial else OrchestratorState.COMPLETED
        logger.info(
            f"🔬 ELLIPSOID FACTOR: {len(result.seeds)} seeds, {len(ellipsoids)} ellipsoids, "
            f"{result.assigned_voxels}/{result.foreground_voxels} voxels assigned "
            f"({result.filling_percentage:.1f}%){' [partial]' if partial else ''}"
        )
        return result

    def _find_ellipsoids(self, grid, seeds, cancel_event, log_file_base) -> Tuple[List[Ellipsoid], int]:
        config = self.global_config
        directions = seeding_directions(config.sampling.n_directions)
        sample_directions = generate_directions(config.sampling.n_directions)

        tasks = [(grid, seed, directions, sample_directions, config.fitting) for seed in seeds]
        per_seed = self._run_tasks("seed", _search_seed, tasks, cancel_event, log_file_base)

        merged = []
        for index in sorted(per_seed):
            merged.extend(per_seed[index])
        ellipsoids = sort_by_volume(merged)

        if not ellipsoids:
            logger.warning("🔬 ELLIPSOID FACTOR: No valid ellipsoids found")
        else:
            logger.info(f"🔬 ELLIPSOID FACTOR: {len(ellipsoids)} ellipsoids from {len(per_seed)} seeds")
        return ellipsoids, len(per_seed)

    def _assign(self, grid, ellipsoids, cancel_event, log_file_base) -> Tuple[np.ndarray, int]:
        identity = np.full(grid.mask.shape, UNASSIGNED, dtype=IDENTITY_DTYPE)
        arrays = EllipsoidArrays.from_ellipsoids(ellipsoids)

        config = self.global_config
        tasks = [
            (grid, arrays, z, config.assignment_chunk, config.assignment_budget)
            for z in range(grid.mask.shape[0])
        ]
        per_slice = self._run_tasks("slice", _label_slice, tasks, cancel_event, log_file_base)

        for z, labels in per_slice.items():
            identity[z] = labels
        return identity, len(per_slice)


def _mask_from_seeds(grid: VoxelGrid, seeds) -> np.ndarray:
    mask = np.zeros(grid.mask.shape, dtype=np.uint8)
    if seeds:
        indices = to_voxel_index(np.asarray(seeds, dtype=np.float64))
        indices = indices[grid.indices_in_bounds(indices)]
        mask[indices[:, 2], indices[:, 1], indices[:, 0]] = SEED_MASK_VALUE
    return mask
