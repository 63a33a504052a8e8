"""Tests for the coordinator and partition worker loop."""

import threading

import numpy as np
import pytest

from halolife.core.grid import Grid
from halolife.core.rules import step_grid
from halolife.distributed.channel import ThreadHub
from halolife.distributed.control import CellEdit, ControlState
from halolife.distributed.coordinator import Coordinator, split_gathered
from halolife.distributed.errors import CommunicationFailure, EngineError, InvalidPartition, ProtocolViolation
from halolife.distributed.halo import WorkerContext
from halolife.distributed.planner import compute_plan
from halolife.distributed.worker import PartitionWorker


def start_workers(hub, plan, width):
    """Start a PartitionWorker thread per worker; return (threads, workers, errors)."""
    errors = []
    workers = [
        PartitionWorker(WorkerContext(i, plan.worker_count), channel, plan, width)
        for i, channel in enumerate(hub.workers())
    ]

    def target(worker):
        try:
            worker.run()
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=target, args=(worker,), daemon=True) for worker in workers]
    for thread in threads:
        thread.start()
    return threads, workers, errors


def make_coordinator(grid, worker_count, generation_limit, timeout=5.0):
    hub = ThreadHub(worker_count, timeout=timeout)
    coordinator = Coordinator(grid, hub.coordinator(), generation_limit)
    threads, workers, errors = start_workers(hub, coordinator.plan, grid.width)
    return coordinator, threads, workers, errors


def join(threads):
    for thread in threads:
        thread.join(10)
        assert not thread.is_alive()


class TestControlState:
    """Control values."""

    def test_defaults(self):
        """Runs animate and don't stop by default."""
        control = ControlState()
        assert control.stop is False
        assert control.animating is True

    def test_immutable(self):
        """Control states are frozen."""
        control = ControlState()
        with pytest.raises(AttributeError):
            control.stop = True
        assert control.stopped() == ControlState(stop=True, animating=True)

    def test_cell_edit(self):
        """Cell edits unpack as (x, y, value)."""
        x, y, value = CellEdit(1, 2, 1)
        assert (x, y, value) == (1, 2, 1)


class TestCoordinator:
    """Coordinator orchestration."""

    def test_runs_to_generation_limit(self):
        """The run stops at the limit and workers exit."""
        grid = Grid.square(8)
        grid.randomize(0.4, seed=1)
        expected = grid.copy()
        for _ in range(4):
            step_grid(expected.cells)

        coordinator, threads, workers, errors = make_coordinator(grid, 3, 4)
        result = coordinator.run()
        join(threads)

        assert not errors
        assert result.generations == 4
        assert result.reason == "generation_limit"
        assert result.population == expected.population
        assert grid == expected
        assert [worker.generation for worker in workers] == [4, 4, 4]

    def test_zero_generations(self):
        """A limit of zero stops immediately."""
        grid = Grid.square(4)
        grid.set_cell(1, 1, True)

        coordinator, threads, _workers, errors = make_coordinator(grid, 2, 0)
        result = coordinator.run()
        join(threads)

        assert not errors
        assert result.generations == 0
        assert grid.get_cell(1, 1)

    def test_matches_serial_every_generation(self):
        """The gathered grid equals the serial step after every generation."""
        grid = Grid.square(12)
        grid.randomize(0.35, seed=5)
        serial = grid.copy()
        mismatches = []

        def check(generation, snapshot):
            step_grid(serial.cells)
            if snapshot != serial.snapshot():
                mismatches.append(generation)

        coordinator, threads, _workers, errors = make_coordinator(grid, 7, 6)
        coordinator.add_listener(check)
        coordinator.run()
        join(threads)

        assert not errors
        assert mismatches == []

    def test_stop_ends_run(self):
        """A stop submitted by a listener ends the run at the next broadcast."""
        grid = Grid.square(6)

        coordinator, threads, workers, errors = make_coordinator(grid, 2, 10)
        coordinator.add_listener(lambda generation, snapshot: generation == 3 and coordinator.stop())
        result = coordinator.run()
        join(threads)

        assert not errors
        assert result.generations == 3
        assert result.reason == "stopped"
        assert workers[0].generation == 3

    def test_edits_applied_before_scatter(self):
        """Pending edits reach the workers in the next generation."""
        grid = Grid.square(5)

        coordinator, threads, _workers, errors = make_coordinator(grid, 2, 1)
        coordinator.submit_edits([(2, 1, 1), (2, 2, 1), (2, 3, 1), (9, 9, 1)])
        coordinator.run()
        join(threads)

        assert not errors
        assert sorted(grid.living_cells()) == [(1, 2), (2, 2), (3, 2)]

    def test_paused_cycles_do_not_advance(self):
        """Paused cycles leave the grid and generation untouched."""
        grid = Grid.square(5)
        grid.apply_edits([(2, 2, 1)])

        coordinator, threads, workers, errors = make_coordinator(grid, 2, 5)
        coordinator.submit_control(ControlState(animating=False))
        timer = threading.Timer(0.1, coordinator.submit_control, args=(ControlState(stop=True, animating=False),))
        timer.start()
        result = coordinator.run()
        timer.join()
        join(threads)

        assert not errors
        assert result.generations == 0
        assert result.reason == "stopped"
        assert grid.get_cell(2, 2)
        assert workers[1].generation == 0

    def test_snapshot(self):
        """Snapshots are flat and row-major."""
        grid = Grid.square(3)
        grid.set_cell(1, 2, True)
        coordinator = Coordinator(grid, ThreadHub(1).coordinator(), 1)

        assert coordinator.snapshot() == (0, 0, 0, 0, 0, 0, 0, 1, 0)

    def test_invalid_worker_count(self):
        """More workers than rows fails at startup."""
        with pytest.raises(InvalidPartition):
            Coordinator(Grid.square(3), ThreadHub(4).coordinator(), 1)

    def test_non_square_grid(self):
        """The global grid must be square."""
        with pytest.raises(ValueError):
            Coordinator(Grid(4, 5), ThreadHub(1).coordinator(), 1)

    def test_unresponsive_workers_time_out(self):
        """Without workers the first barrier times out and the run aborts."""
        grid = Grid.square(4)
        coordinator = Coordinator(grid, ThreadHub(2, timeout=0.05).coordinator(), 3)

        with pytest.raises(CommunicationFailure) as excinfo:
            coordinator.run()

        assert excinfo.value.generation == 0
        assert excinfo.value.phase == "barrier"

    def test_listener_error_aborts_workers(self):
        """A failing listener aborts the run instead of stranding the workers."""
        grid = Grid.square(6)

        def explode(generation, snapshot):
            raise RuntimeError("display went away")

        coordinator, threads, _workers, errors = make_coordinator(grid, 2, 5, timeout=None)
        coordinator.add_listener(explode)

        with pytest.raises(EngineError) as excinfo:
            coordinator.run()
        join(threads)

        assert excinfo.value.generation == 1
        assert excinfo.value.phase == "notify"
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert len(errors) == 2
        assert all(isinstance(e, CommunicationFailure) for e in errors)

    def test_invalid_edit_value_rejected(self):
        """Edits that aren't cell states fail at submission, not mid-run."""
        grid = Grid.square(5)

        coordinator, threads, _workers, errors = make_coordinator(grid, 2, 1, timeout=None)
        with pytest.raises(ValueError):
            coordinator.submit_edits([(1, 1, 1), (1, 2, 2)])

        result = coordinator.run()
        join(threads)

        assert not errors
        assert result.generations == 1
        assert grid.population == 0

    def test_step_time_reported(self):
        """Worker step time is gathered separately from the generation time."""
        grid = Grid.square(10)
        grid.randomize(0.3, seed=2)

        coordinator, threads, workers, errors = make_coordinator(grid, 2, 3)
        result = coordinator.run()
        join(threads)

        assert not errors
        assert result.step_duration_ms > 0
        assert result.step_duration_ms <= result.total_duration_ms
        assert max(worker.step_seconds for worker in workers) * 1000.0 <= result.step_duration_ms

    def test_split_gathered(self):
        """Gathered values must be (block, step seconds) pairs."""
        block = np.zeros((2, 3), dtype=np.int8)

        blocks, seconds = split_gathered([(block, 0.5), (block, 0.25)])
        assert len(blocks) == 2
        assert seconds == [0.5, 0.25]

        with pytest.raises(ProtocolViolation):
            split_gathered([(block, 0.5), block])


class TestPartitionWorker:
    """Worker-side failures."""

    def test_wrong_block_shape(self):
        """A scattered block of the wrong shape aborts the worker."""
        hub = ThreadHub(2, timeout=1.0)
        plan = compute_plan(4, 2)
        threads, _workers, errors = start_workers(hub, plan, 4)

        coordinator = hub.coordinator()
        coordinator.broadcast(ControlState())
        coordinator.scatter([np.zeros((3, 4), dtype=np.int8), np.zeros((2, 4), dtype=np.int8)])
        with pytest.raises(CommunicationFailure):
            coordinator.gather()
        join(threads)

        violations = [e for e in errors if isinstance(e, ProtocolViolation)]
        assert len(violations) == 1
        assert violations[0].phase == "scatter"
        assert violations[0].generation == 0

    def test_unexpected_broadcast(self):
        """Anything other than a ControlState broadcast is rejected."""
        hub = ThreadHub(1, timeout=1.0)
        threads, _workers, errors = start_workers(hub, compute_plan(2, 1), 2)

        hub.coordinator().broadcast("go")
        join(threads)

        assert len(errors) == 1
        assert isinstance(errors[0], ProtocolViolation)
        assert errors[0].phase == "broadcast"

    def test_mismatched_plan(self):
        """Plan and context must agree on the worker count."""
        with pytest.raises(ValueError):
            PartitionWorker(WorkerContext(0, 2), ThreadHub(2).endpoint(0), compute_plan(4, 3), 4)
