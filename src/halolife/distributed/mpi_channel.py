"""Message channel over MPI.

Launch with one more rank than workers, e.g. ``mpiexec -n 5 halolife
--backend mpi`` for four workers. Rank 0 is the coordinator and rank
``w + 1`` is worker ``w``.

Point-to-point receives and barriers poll non-blocking requests so the
channel timeout applies; the collectives use MPI's blocking calls.
"""

from typing import Any, List, Optional, Sequence
import logging
import time

from mpi4py import MPI

from ..core.grid import Grid
from .channel import COORDINATOR, MessageChannel, Tag
from .coordinator import Coordinator, RunResult
from .engine import EngineConfig, build_grid, run_worker
from .errors import CommunicationFailure, ProtocolViolation
from .planner import compute_plan

logger = logging.getLogger(__name__)

ROOT_RANK = 0
POLL_INTERVAL = 0.0005


def rank_of(endpoint: int) -> int:
    return ROOT_RANK if endpoint == COORDINATOR else endpoint + 1


def endpoint_of(rank: int) -> int:
    return COORDINATOR if rank == ROOT_RANK else rank - 1


class MPIChannel(MessageChannel):
    """Endpoint bound to this process's rank in an MPI communicator."""

    def __init__(self, comm=None, timeout: Optional[float] = None) -> None:
        self.comm = comm or MPI.COMM_WORLD
        size = self.comm.Get_size()
        if size < 2:
            raise CommunicationFailure("MPI channel needs at least two ranks (coordinator and one worker)")
        super().__init__(endpoint_of(self.comm.Get_rank()), size - 1, timeout)

    def _wait(self, request, what: str):
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        while True:
            done, result = request.test()
            if done:
                return result
            if deadline is not None and time.monotonic() > deadline:
                raise CommunicationFailure(f"Endpoint {self.endpoint} timed out waiting for {what}")
            time.sleep(POLL_INTERVAL)

    def send(self, dest: int, payload: Any, tag: Tag) -> None:
        try:
            self.comm.send(payload, dest=rank_of(dest), tag=int(tag))
        except MPI.Exception as e:
            raise CommunicationFailure(f"Send from {self.endpoint} to {dest} failed: {e}") from e

    def recv(self, source: int, tag: Tag) -> Any:
        status = MPI.Status()
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        # Probe on any tag so a message from the wrong stage is reported, not left waiting
        while not self.comm.iprobe(source=rank_of(source), tag=MPI.ANY_TAG, status=status):
            if deadline is not None and time.monotonic() > deadline:
                raise CommunicationFailure(
                    f"Endpoint {self.endpoint} timed out waiting for {Tag(tag).name} from {source}"
                )
            time.sleep(POLL_INTERVAL)

        if status.Get_tag() != int(tag):
            raise ProtocolViolation(
                f"Endpoint {self.endpoint} expected {Tag(tag).name} from {source}, got tag {status.Get_tag()}"
            )
        return self.comm.recv(source=rank_of(source), tag=int(tag))

    def barrier(self) -> None:
        self._wait(self.comm.Ibarrier(), "barrier")

    def abort(self) -> None:
        logger.error(f"Endpoint {self.endpoint} aborting MPI run")
        self.comm.Abort(1)

    def broadcast(self, value: Any = None) -> Any:
        return self.comm.bcast(value, root=ROOT_RANK)

    def scatter(self, chunks: Optional[Sequence[Any]] = None) -> Any:
        if self.is_coordinator:
            if chunks is None or len(chunks) != self.worker_count:
                raise ProtocolViolation(
                    f"Scatter needs {self.worker_count} chunks, got {0 if chunks is None else len(chunks)}"
                )
            self.comm.scatter([None] + list(chunks), root=ROOT_RANK)
            return None
        return self.comm.scatter(None, root=ROOT_RANK)

    def gather(self, value: Any = None) -> Optional[List[Any]]:
        gathered = self.comm.gather(value, root=ROOT_RANK)
        if self.is_coordinator:
            return gathered[1:]
        return None


def run_mpi(config: EngineConfig, grid: Optional[Grid] = None, comm=None) -> Optional[RunResult]:
    """Run the engine with one MPI rank per worker plus the coordinator rank.

    Returns:
        The run result on the coordinator rank, None on worker ranks
    """
    channel = MPIChannel(comm, timeout=config.phase_timeout)
    if channel.worker_count != config.worker_count:
        logger.warning(
            f"Configured {config.worker_count} workers but MPI provides {channel.worker_count}; using MPI size"
        )
    plan = compute_plan(config.grid_size, channel.worker_count)

    if channel.is_coordinator:
        grid = grid if grid is not None else build_grid(config)
        coordinator = Coordinator(
            grid, channel, config.generation_limit, plan=plan, idle_interval=config.idle_interval
        )
        return coordinator.run()

    run_worker(channel.endpoint, channel, plan, config.grid_size)
    return None
