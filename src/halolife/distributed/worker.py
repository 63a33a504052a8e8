"""Partition worker: owns one row range and advances it each generation."""

from typing import Any
import logging
import time
import numpy as np

from ..core.rules import CELL_DTYPE, step_partition
from .channel import MessageChannel, guarded_phase
from .control import ControlState
from .errors import ProtocolViolation
from .halo import HaloBuffer, WorkerContext, exchange_halos
from .planner import PartitionPlan

logger = logging.getLogger(__name__)


class PartitionWorker:
    """Runs the worker side of the lockstep generation loop.

    The worker holds no state across generations other than buffers: its
    partition is overwritten by every scatter and handed back by every
    gather.
    """

    def __init__(self, context: WorkerContext, channel: MessageChannel, plan: PartitionPlan, width: int) -> None:
        """Initialize a worker.

        Args:
            context: This worker's identity
            channel: This worker's channel endpoint
            plan: Partition plan shared with the coordinator
            width: Number of grid columns
        """
        if plan.worker_count != context.total_workers:
            raise ValueError(f"Plan has {plan.worker_count} workers, context expects {context.total_workers}")

        self.context = context
        self.channel = channel
        self.slot = plan[context.id]
        self.width = width
        self.local = np.zeros((self.slot.row_count, width), dtype=CELL_DTYPE)
        self.halo = HaloBuffer(context, width)
        self.generation = 0
        self.step_seconds = 0.0

    def run(self) -> int:
        """Process cycles until the coordinator broadcasts ``stop``.

        Returns:
            Number of generations this worker advanced
        """
        logger.debug(f"Worker {self.context.id} owns rows [{self.slot.row_offset}, {self.slot.row_end})")

        while True:
            with guarded_phase(self.channel, self.generation, "broadcast"):
                control = self.channel.broadcast()
                if not isinstance(control, ControlState):
                    raise ProtocolViolation(f"Expected ControlState broadcast, got {type(control).__name__}")

            if control.stop:
                break
            if not control.animating:
                continue

            self.run_generation()

        logger.debug(
            f"Worker {self.context.id} stopping after {self.generation} generations, "
            f"{self.step_seconds * 1000.0:.1f} ms stepping"
        )
        return self.generation

    def run_generation(self) -> None:
        """Scatter, halo exchange, update and gather for one generation.

        The gathered value is ``(block, step_seconds)`` so the coordinator can
        report compute time separately from communication.
        """
        with guarded_phase(self.channel, self.generation, "scatter"):
            self._accept(self.channel.scatter())

        with guarded_phase(self.channel, self.generation, "halo"):
            exchange_halos(self.context, self.channel, self.local, self.halo)

        with guarded_phase(self.channel, self.generation, "barrier"):
            self.channel.barrier()

        with guarded_phase(self.channel, self.generation, "update"):
            start = time.perf_counter()
            step_partition(self.local, self.halo.upper, self.halo.lower)
            step_seconds = time.perf_counter() - start
            self.step_seconds += step_seconds

        with guarded_phase(self.channel, self.generation, "barrier"):
            self.channel.barrier()

        with guarded_phase(self.channel, self.generation, "gather"):
            self.channel.gather((self.local.copy(), step_seconds))

        self.generation += 1

    def _accept(self, block: Any) -> None:
        """Overwrite the local partition with a scattered block."""
        block = np.asarray(block)
        if block.shape != self.local.shape:
            raise ProtocolViolation(
                f"Worker {self.context.id} received block of shape {block.shape}, expected {self.local.shape}"
            )
        self.local[:] = block
