"""Coordinator: owns the global grid and drives the lockstep generations."""

from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple
import logging
import threading
import time

from ..core.grid import Grid
from ..core.rules import Cell
from .channel import MessageChannel, guarded_phase
from .control import CellEdit, ControlState
from .errors import InvalidPartition, ProtocolViolation
from .planner import PartitionPlan, compute_plan

logger = logging.getLogger(__name__)

GenerationListener = Callable[[int, Tuple[int, ...]], None]


@dataclass
class RunResult:
    """Outcome of a coordinator run."""

    generations: int
    reason: str
    total_duration_ms: float
    population: int
    step_duration_ms: float = 0.0


class Coordinator:
    """Coordinator side of the generation loop.

    Every generation the grid round-trips through the workers: the
    coordinator broadcasts the control flags, scatters the rows, waits at
    both barriers and gathers the updated partitions back into its grid.
    """

    def __init__(
        self,
        grid: Grid,
        channel: MessageChannel,
        generation_limit: int,
        plan: Optional[PartitionPlan] = None,
        idle_interval: float = 0.01,
    ) -> None:
        """Initialize the coordinator.

        Args:
            grid: Initial global grid; must be square
            channel: The coordinator's channel endpoint
            generation_limit: Run ends after this many generations
            plan: Partition plan; computed from the grid when omitted
            idle_interval: Seconds to sleep per cycle while not animating

        Raises:
            InvalidPartition: If the worker count doesn't fit the grid
        """
        if grid.width != grid.height:
            raise ValueError(f"Grid must be square, got {grid.width}x{grid.height}")
        if generation_limit < 0:
            raise ValueError(f"Generation limit must be non-negative, got {generation_limit}")

        self.grid = grid
        self.channel = channel
        self.plan = plan or compute_plan(grid.height, channel.worker_count)
        if self.plan.worker_count != channel.worker_count or self.plan.height != grid.height:
            raise InvalidPartition(
                f"Plan covers {self.plan.height} rows over {self.plan.worker_count} workers, "
                f"grid has {grid.height} rows and channel has {channel.worker_count} workers"
            )

        self.generation_limit = generation_limit
        self.idle_interval = idle_interval
        self.generation = 0
        self.control = ControlState()
        self.total_duration_ms = 0.0
        self.step_duration_ms = 0.0

        self._lock = threading.Lock()
        self._pending_control: Optional[ControlState] = None
        self._pending_edits: List[CellEdit] = []
        self._listeners: List[GenerationListener] = []

    def submit_control(self, control: ControlState) -> None:
        """Queue new control flags for the next broadcast."""
        with self._lock:
            self._pending_control = control

    def submit_edits(self, edits: Iterable[Tuple[int, int, int]]) -> None:
        """Queue cell edits to apply before the next scatter.

        Raises:
            ValueError: If an edit value is not a cell state
        """
        validated = []
        for x, y, value in edits:
            if value not in (Cell.DEAD, Cell.ALIVE):
                raise ValueError(f"Edit at ({x}, {y}) has value {value!r}, expected 0 or 1")
            validated.append(CellEdit(int(x), int(y), int(value)))

        with self._lock:
            self._pending_edits.extend(validated)

    def stop(self) -> None:
        """Request the run to end at the next broadcast."""
        self.submit_control(self.control.stopped())

    def add_listener(self, listener: GenerationListener) -> None:
        """Call ``listener(generation, snapshot)`` after each completed generation."""
        self._listeners.append(listener)

    def snapshot(self) -> Tuple[int, ...]:
        return self.grid.snapshot()

    def _merge_pending(self) -> ControlState:
        with self._lock:
            if self._pending_control is not None:
                self.control = self._pending_control
                self._pending_control = None
            edits, self._pending_edits = self._pending_edits, []

        if edits:
            applied = self.grid.apply_edits(edits)
            logger.debug(f"Applied {applied} of {len(edits)} cell edits before generation {self.generation}")
        return self.control

    def run(self) -> RunResult:
        """Drive generations until the limit is reached or a stop is requested."""
        logger.info(
            f"Running {self.grid.width}x{self.grid.height} grid on {self.plan.worker_count} workers "
            f"for up to {self.generation_limit} generations"
        )

        reason = "generation_limit"
        while True:
            with guarded_phase(self.channel, self.generation, "broadcast"):
                control = self._merge_pending()
                if self.generation >= self.generation_limit and not control.stop:
                    control = control.stopped()
                self.channel.broadcast(control)

            if control.stop:
                if self.generation < self.generation_limit:
                    reason = "stopped"
                break
            if not control.animating:
                time.sleep(self.idle_interval)
                continue

            self.run_generation()

        logger.info(f"Run finished after {self.generation} generations ({reason})")
        return RunResult(
            self.generation, reason, self.total_duration_ms, self.grid.population, self.step_duration_ms
        )

    def run_generation(self) -> None:
        """Scatter, synchronize and gather one generation."""
        start = time.perf_counter()

        with guarded_phase(self.channel, self.generation, "scatter"):
            self.channel.scatter(self.plan.scatter(self.grid.cells))

        # Workers exchange halos, then update
        with guarded_phase(self.channel, self.generation, "barrier"):
            self.channel.barrier()
        with guarded_phase(self.channel, self.generation, "barrier"):
            self.channel.barrier()

        with guarded_phase(self.channel, self.generation, "gather"):
            blocks, step_seconds = split_gathered(self.channel.gather())
            self.plan.gather(blocks, self.grid.cells)

        self.total_duration_ms += (time.perf_counter() - start) * 1000.0
        # Workers step in parallel, so the slowest one bounds the generation
        self.step_duration_ms += max(step_seconds) * 1000.0
        self.generation += 1

        if self._listeners:
            with guarded_phase(self.channel, self.generation, "notify"):
                snapshot = self.snapshot()
                for listener in self._listeners:
                    listener(self.generation, snapshot)


def split_gathered(parts: Sequence[Any]) -> Tuple[List[Any], List[float]]:
    """Split gathered ``(block, step_seconds)`` pairs into blocks and timings.

    Raises:
        ProtocolViolation: If a worker sent anything other than a pair
    """
    blocks, step_seconds = [], []
    for worker_id, part in enumerate(parts):
        if not isinstance(part, tuple) or len(part) != 2:
            raise ProtocolViolation(
                f"Worker {worker_id} sent {type(part).__name__} to gather, expected (block, step seconds)"
            )
        blocks.append(part[0])
        step_seconds.append(float(part[1]))
    return blocks, step_seconds
