"""Engine bootstrap: builds the grid and plan, starts workers, runs the coordinator."""

from dataclasses import dataclass
from typing import List, Optional
import logging
import queue
import threading

from ..core.grid import Grid
from ..core.patterns import PatternLibrary
from .channel import MessageChannel, ProcessHub, ThreadHub
from .coordinator import Coordinator, RunResult
from .errors import CommunicationFailure
from .halo import WorkerContext
from .planner import PartitionPlan, compute_plan
from .worker import PartitionWorker

logger = logging.getLogger(__name__)

BACKENDS = ("threads", "processes")


@dataclass
class EngineConfig:
    """Startup configuration for a distributed run."""

    grid_size: int = 100
    worker_count: int = 4
    generation_limit: int = 500
    phase_timeout: Optional[float] = 30.0
    idle_interval: float = 0.01
    population_rate: float = 0.0
    pattern: Optional[str] = None
    pattern_x: int = 0
    pattern_y: int = 0
    seed: Optional[int] = None


def build_grid(config: EngineConfig) -> Grid:
    """Create the initial global grid: a pattern, a random fill, or all dead.

    Raises:
        ValueError: If the named pattern doesn't exist
    """
    grid = Grid.square(config.grid_size)

    if config.pattern:
        pattern = PatternLibrary().get_pattern(config.pattern)
        if pattern is None:
            raise ValueError(f"Pattern '{config.pattern}' not found")
        pattern.apply_to_grid(grid, config.pattern_x, config.pattern_y)
    elif config.population_rate > 0:
        grid.randomize(config.population_rate, seed=config.seed)

    return grid


def run_worker(worker_id: int, channel: MessageChannel, plan: PartitionPlan, width: int) -> int:
    """Run one partition worker to completion."""
    context = WorkerContext(worker_id, plan.worker_count)
    return PartitionWorker(context, channel, plan, width).run()


def _process_worker_main(worker_id, channel, plan, width, error_queue, log_level) -> None:
    logging.basicConfig(level=log_level)
    try:
        run_worker(worker_id, channel, plan, width)
    except Exception as e:
        error_queue.put((worker_id, e))
        raise


class DistributedEngine:
    """One coordinator plus ``worker_count`` partition workers.

    The plan is computed at construction, so an invalid worker count fails
    before anything starts. Collaborators may register listeners and submit
    control input on ``engine.coordinator`` before or during ``run()``.
    """

    def __init__(self, config: EngineConfig, grid: Optional[Grid] = None, backend: str = "threads") -> None:
        """Initialize the engine.

        Args:
            config: Startup configuration
            grid: Initial grid (built from ``config`` when omitted)
            backend: ``"threads"`` or ``"processes"``

        Raises:
            InvalidPartition: If the worker count doesn't fit the grid
        """
        if backend not in BACKENDS:
            raise ValueError(f"Unknown backend '{backend}'. Available: {', '.join(BACKENDS)}")

        self.config = config
        self.backend = backend
        self.plan = compute_plan(config.grid_size, config.worker_count)
        self.grid = grid if grid is not None else build_grid(config)
        if self.grid.shape != (config.grid_size, config.grid_size):
            raise ValueError(f"Grid shape {self.grid.shape} doesn't match grid size {config.grid_size}")

        if backend == "processes":
            self.hub = ProcessHub(config.worker_count, config.phase_timeout)
        else:
            self.hub = ThreadHub(config.worker_count, config.phase_timeout)

        self.coordinator = Coordinator(
            self.grid,
            self.hub.coordinator(),
            config.generation_limit,
            plan=self.plan,
            idle_interval=config.idle_interval,
        )

    def run(self) -> RunResult:
        """Start the workers, drive the run and wait for every worker to exit.

        Raises:
            EngineError: The coordinator's failure, or else the first worker failure
        """
        if self.backend == "processes":
            return self._run_processes()
        return self._run_threads()

    def _run_threads(self) -> RunResult:
        errors: List[BaseException] = []

        def target(worker_id: int, channel: MessageChannel) -> None:
            try:
                run_worker(worker_id, channel, self.plan, self.grid.width)
            except Exception as e:
                errors.append(e)

        threads = [
            threading.Thread(target=target, args=(i, channel), name=f"halolife-worker-{i}", daemon=True)
            for i, channel in enumerate(self.hub.workers())
        ]
        for thread in threads:
            thread.start()

        try:
            result = self.coordinator.run()
        except CommunicationFailure as e:
            for thread in threads:
                thread.join(self.config.phase_timeout)
            # A worker failure surfaces at the coordinator as an abort
            if errors:
                raise errors[0] from e
            raise
        except Exception:
            for thread in threads:
                thread.join(self.config.phase_timeout)
            raise

        for thread in threads:
            thread.join(self.config.phase_timeout)
        if errors:
            raise errors[0]
        return result

    def _run_processes(self) -> RunResult:
        context = self.hub.context
        error_queue = context.Queue()
        log_level = logging.getLogger().getEffectiveLevel()

        processes = [
            context.Process(
                target=_process_worker_main,
                args=(i, channel, self.plan, self.grid.width, error_queue, log_level),
                name=f"halolife-worker-{i}",
            )
            for i, channel in enumerate(self.hub.workers())
        ]
        for process in processes:
            process.start()

        try:
            result = self.coordinator.run()
        except CommunicationFailure as e:
            self._join_processes(processes)
            errors = self._drain_errors(error_queue)
            if errors:
                raise errors[0] from e
            raise
        except Exception:
            self._join_processes(processes)
            raise

        self._join_processes(processes)
        errors = self._drain_errors(error_queue)
        if errors:
            raise errors[0]

        for i, process in enumerate(processes):
            if process.exitcode != 0:
                raise CommunicationFailure(f"Worker process {i} exited with code {process.exitcode}")
        return result

    def _join_processes(self, processes) -> None:
        for process in processes:
            process.join(self.config.phase_timeout)
            if process.is_alive():
                logger.warning(f"Terminating unresponsive worker process {process.name}")
                process.terminate()
                process.join()

    @staticmethod
    def _drain_errors(error_queue) -> List[BaseException]:
        """Collect worker errors, lowest worker id first."""
        reported = []
        while True:
            try:
                reported.append(error_queue.get(timeout=0.1))
            except queue.Empty:
                break
        return [error for _worker_id, error in sorted(reported, key=lambda item: item[0])]


def run_threaded(config: EngineConfig, grid: Optional[Grid] = None) -> RunResult:
    """Run with workers as threads in this process."""
    return DistributedEngine(config, grid, backend="threads").run()


def run_multiprocess(config: EngineConfig, grid: Optional[Grid] = None) -> RunResult:
    """Run with one operating-system process per worker."""
    return DistributedEngine(config, grid, backend="processes").run()
