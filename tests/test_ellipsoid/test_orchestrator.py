"""End-to-end tests for EllipsoidFactorOrchestrator."""
import threading

import numpy as np
import pytest

from ellipsoidfactor.constants.constants import UNASSIGNED, OrchestratorState
from ellipsoidfactor.core.config import GlobalEllipsoidFactorConfig, SamplingConfig
from ellipsoidfactor.core.exceptions import InvalidArgumentError
from ellipsoidfactor.core.orchestrator import EllipsoidFactorOrchestrator
from ellipsoidfactor.processing.backends.ellipsoid.ellipsoid import inside_ellipsoid
from ellipsoidfactor.processing.backends.ellipsoid.painting import filling_percentage


class _CancelAfter(threading.Event):
    """Event that sets itself once it has been polled more than checks times."""

    def __init__(self, checks):
        super().__init__()
        self._checks = checks

    def is_set(self):
        self._checks -= 1
        if self._checks < 0:
            self.set()
        return super().is_set()


def _config(**kwargs):
    kwargs.setdefault("num_workers", 1)
    kwargs.setdefault("sampling", SamplingConfig(n_directions=12))
    return GlobalEllipsoidFactorConfig(**kwargs)


class TestEllipsoidFactorOrchestrator:

    def setup_method(self):
        self.seeds = [(10.5, 10.5, 10.5), (9.5, 10.5, 11.5)]

    def test_explicit_seeds(self, small_sphere_volume):
        orchestrator = EllipsoidFactorOrchestrator(global_config=_config())
        result = orchestrator.run(small_sphere_volume, seeds=self.seeds)

        assert orchestrator.state is OrchestratorState.COMPLETED
        assert not result.partial
        assert result.ellipsoids
        volumes = [e.volume for e in result.ellipsoids]
        assert volumes == sorted(volumes, reverse=True)

        background = small_sphere_volume == 0
        assert np.all(result.identity[background] == UNASSIGNED)
        assert result.identity.max() < len(result.ellipsoids)
        assert result.assigned_voxels > 0
        assert result.foreground_voxels == np.count_nonzero(small_sphere_volume)

        assigned = result.identity >= 0
        assert np.all(np.isfinite(result.ellipsoid_factor[assigned]))
        assert np.all(np.isnan(result.ellipsoid_factor[~assigned]))
        assert np.all(np.abs(result.ellipsoid_factor[assigned]) < 1.0)
        assert np.all(result.volume[assigned] > 0)

        assert result.seed_mask[10, 10, 10] == 255
        assert result.seed_mask[11, 10, 9] == 255
        assert np.count_nonzero(result.seed_mask) == 2

    def test_assigned_voxels_lie_in_their_ellipsoid(self, small_sphere_volume):
        result = EllipsoidFactorOrchestrator(global_config=_config()).run(small_sphere_volume, seeds=self.seeds)
        for z, y, x in np.argwhere(result.identity >= 0)[::7]:
            assert inside_ellipsoid((x + 0.5, y + 0.5, z + 0.5), result.ellipsoids[result.identity[z, y, x]])

    def test_seeds_from_ridge(self, small_sphere_volume):
        result = EllipsoidFactorOrchestrator(global_config=_config()).run(small_sphere_volume)
        assert result.seeds
        assert np.count_nonzero(result.seed_mask) == len(result.seeds)
        assert result.ellipsoids
        assert 0.0 < result.filling_percentage <= 100.0
        assert result.filling_percentage == filling_percentage(result.identity, small_sphere_volume > 0)

        summary = result.summary()
        assert summary["seed_points"] == len(result.seeds)
        assert summary["ellipsoids"] == len(result.ellipsoids)
        assert summary["partial"] is False

    def test_threaded_matches_serial(self, small_sphere_volume):
        serial = EllipsoidFactorOrchestrator(global_config=_config()).run(small_sphere_volume, seeds=self.seeds)
        threaded = EllipsoidFactorOrchestrator(
            global_config=_config(num_workers=3, use_threading=True)
        ).run(small_sphere_volume, seeds=self.seeds)

        assert not threaded.partial
        assert len(threaded.ellipsoids) == len(serial.ellipsoids)
        assert np.array_equal(threaded.identity, serial.identity)

    def test_cancelled_before_start(self, small_sphere_volume):
        event = threading.Event()
        event.set()
        orchestrator = EllipsoidFactorOrchestrator(global_config=_config())
        result = orchestrator.run(small_sphere_volume, seeds=self.seeds, cancel_event=event)

        assert result.partial
        assert result.ellipsoids == []
        assert np.all(result.identity == UNASSIGNED)
        assert orchestrator.state is OrchestratorState.CANCELLED

    def test_cancelled_mid_run_keeps_completed_seeds(self, small_sphere_volume):
        first_only = EllipsoidFactorOrchestrator(global_config=_config()).run(
            small_sphere_volume, seeds=self.seeds[:1]
        )
        result = EllipsoidFactorOrchestrator(global_config=_config()).run(
            small_sphere_volume, seeds=self.seeds, cancel_event=_CancelAfter(1)
        )
        assert result.partial
        assert len(result.ellipsoids) == len(first_only.ellipsoids)
        assert np.all(result.identity == UNASSIGNED)

    def test_cancelled_threads(self, small_sphere_volume):
        event = threading.Event()
        event.set()
        result = EllipsoidFactorOrchestrator(
            global_config=_config(num_workers=2, use_threading=True)
        ).run(small_sphere_volume, seeds=self.seeds, cancel_event=event)
        assert result.partial
        assert result.ellipsoids == []

    def test_empty_volume(self):
        result = EllipsoidFactorOrchestrator(global_config=_config()).run(np.zeros((8, 8, 8), dtype=np.uint8))
        assert result.seeds == []
        assert result.ellipsoids == []
        assert not result.partial
        assert np.all(result.identity == UNASSIGNED)
        assert result.filling_percentage == 0.0

    def test_invalid_volume(self):
        orchestrator = EllipsoidFactorOrchestrator(global_config=_config())
        with pytest.raises(InvalidArgumentError):
            orchestrator.run(np.zeros((8, 8), dtype=np.uint8))
        with pytest.raises(InvalidArgumentError):
            orchestrator.run(np.arange(27).reshape(3, 3, 3))

    def test_invalid_configuration(self):
        with pytest.raises(InvalidArgumentError):
            EllipsoidFactorOrchestrator(global_config=_config(sampling=SamplingConfig(n_directions=2)))
        with pytest.raises(InvalidArgumentError):
            EllipsoidFactorOrchestrator(global_config=_config(assignment_chunk=0))
        with pytest.raises(InvalidArgumentError):
            EllipsoidFactorOrchestrator(global_config=_config(assignment_budget=0))


class TestProcessPoolExecution:

    def setup_method(self):
        self.seeds = [(10.5, 10.5, 10.5), (9.5, 10.5, 11.5)]

    def test_process_pool_matches_serial(self, small_sphere_volume):
        serial = EllipsoidFactorOrchestrator(global_config=_config()).run(small_sphere_volume, seeds=self.seeds)
        orchestrator = EllipsoidFactorOrchestrator(global_config=_config(num_workers=2, use_threading=False))
        pooled = orchestrator.run(small_sphere_volume, seeds=self.seeds)

        assert orchestrator.state is OrchestratorState.COMPLETED
        assert not pooled.partial
        assert [e.volume for e in pooled.ellipsoids] == [e.volume for e in serial.ellipsoids]
        assert np.array_equal(pooled.identity, serial.identity)

    def test_worker_log_files(self, small_sphere_volume, tmp_path):
        log_file_base = str(tmp_path / "ellipsoid_factor")
        EllipsoidFactorOrchestrator(global_config=_config(num_workers=2, use_threading=False)).run(
            small_sphere_volume, seeds=self.seeds, log_file_base=log_file_base
        )

        worker_logs = sorted(tmp_path.glob("ellipsoid_factor_worker_*.log"))
        assert worker_logs
        assert all("WORKER: Process" in path.read_text() for path in worker_logs)

    def test_cancelled_process_run_is_partial(self, small_sphere_volume):
        seeds = [(x + 0.5, y + 0.5, 10.5) for x in range(8, 13) for y in range(8, 11)]
        event = threading.Event()
        event.set()
        orchestrator = EllipsoidFactorOrchestrator(global_config=_config(num_workers=2, use_threading=False))
        result = orchestrator.run(small_sphere_volume, seeds=seeds, cancel_event=event)

        assert result.partial
        assert orchestrator.state is OrchestratorState.CANCELLED
        assert len(result.seeds) == len(seeds)
        assert np.all(result.identity[small_sphere_volume == 0] == UNASSIGNED)
