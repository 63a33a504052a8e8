"""Message channel between the coordinator and partition workers.

Endpoints are addressed by worker id (``0 .. worker_count - 1``) or by
``COORDINATOR``. Point-to-point delivery is reliable and ordered per
sender/receiver pair. Collectives are rooted at the coordinator.

Two queue-backed implementations are provided: ``ThreadHub`` for workers
running as threads and ``ProcessHub`` for workers running as separate
processes. Both hand out ``QueueChannel`` endpoints.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import IntEnum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
import logging
import multiprocessing as mp
import queue
import threading

from .errors import CommunicationFailure, EngineError, ProtocolViolation

logger = logging.getLogger(__name__)

COORDINATOR = -1


class Tag(IntEnum):
    """Message tags; each protocol stage uses its own tag."""

    BROADCAST = 1
    SCATTER = 2
    GATHER = 3
    FORWARD_EVEN = 10
    FORWARD_ODD = 11
    BACKWARD_EVEN = 12
    BACKWARD_ODD = 13
    ABORT = 99


class MessageChannel(ABC):
    """One endpoint's view of the message channel."""

    def __init__(self, endpoint: int, worker_count: int, timeout: Optional[float] = None) -> None:
        """Initialize an endpoint.

        Args:
            endpoint: Worker id, or ``COORDINATOR``
            worker_count: Number of workers attached to the channel
            timeout: Seconds any blocking operation may wait (None waits forever)
        """
        self.endpoint = endpoint
        self.worker_count = worker_count
        self.timeout = timeout

    @property
    def is_coordinator(self) -> bool:
        return self.endpoint == COORDINATOR

    @abstractmethod
    def send(self, dest: int, payload: Any, tag: Tag) -> None:
        """Send ``payload`` to endpoint ``dest``."""

    @abstractmethod
    def recv(self, source: int, tag: Tag) -> Any:
        """Receive the next message from ``source``, which must carry ``tag``.

        Raises:
            ProtocolViolation: If the next message carries another tag
            CommunicationFailure: If nothing arrives within the timeout
        """

    @abstractmethod
    def barrier(self) -> None:
        """Block until every worker and the coordinator reach the barrier."""

    @abstractmethod
    def abort(self) -> None:
        """Tear down this endpoint's participation so blocked peers fail."""

    def broadcast(self, value: Any = None) -> Any:
        """Coordinator sends ``value`` to every worker; workers return it."""
        if self.is_coordinator:
            for worker_id in range(self.worker_count):
                self.send(worker_id, value, Tag.BROADCAST)
            return value
        return self.recv(COORDINATOR, Tag.BROADCAST)

    def scatter(self, chunks: Optional[Sequence[Any]] = None) -> Any:
        """Coordinator sends ``chunks[w]`` to worker ``w``; workers return their chunk."""
        if self.is_coordinator:
            if chunks is None or len(chunks) != self.worker_count:
                raise ProtocolViolation(
                    f"Scatter needs {self.worker_count} chunks, got {0 if chunks is None else len(chunks)}"
                )
            for worker_id, chunk in enumerate(chunks):
                self.send(worker_id, chunk, Tag.SCATTER)
            return None
        return self.recv(COORDINATOR, Tag.SCATTER)

    def gather(self, value: Any = None) -> Optional[List[Any]]:
        """Workers send ``value``; the coordinator returns all values in worker order."""
        if self.is_coordinator:
            return [self.recv(worker_id, Tag.GATHER) for worker_id in range(self.worker_count)]
        self.send(COORDINATOR, value, Tag.GATHER)
        return None


@contextmanager
def guarded_phase(channel: MessageChannel, generation: int, phase: str) -> Iterator[None]:
    """Abort the channel if the wrapped phase fails.

    Engine errors are annotated with the generation and phase before
    being re-raised; any other exception is re-raised as an ``EngineError``
    carrying them.
    """
    try:
        yield
    except EngineError as e:
        e.annotate(generation, phase)
        logger.error(f"Endpoint {channel.endpoint} failed: {e}")
        channel.abort()
        raise
    except Exception as e:
        logger.exception(f"Endpoint {channel.endpoint} failed in generation {generation}, phase '{phase}'")
        channel.abort()
        raise EngineError(f"{type(e).__name__}: {e}", generation, phase) from e


def channel_routes(worker_count: int) -> List[Tuple[int, int]]:
    """Directed (source, dest) pairs the engine ever uses.

    The coordinator talks to every worker, and each worker talks to the
    workers directly above and below it.
    """
    routes = []
    for worker_id in range(worker_count):
        routes.append((COORDINATOR, worker_id))
        routes.append((worker_id, COORDINATOR))
        if worker_id + 1 < worker_count:
            routes.append((worker_id, worker_id + 1))
            routes.append((worker_id + 1, worker_id))
    return routes


class QueueChannel(MessageChannel):
    """Endpoint backed by one FIFO queue per directed route."""

    def __init__(
        self,
        endpoint: int,
        worker_count: int,
        routes: Dict[Tuple[int, int], Any],
        barrier: Any,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(endpoint, worker_count, timeout)
        self._routes = routes
        self._barrier = barrier

    def _route(self, source: int, dest: int):
        try:
            return self._routes[(source, dest)]
        except KeyError:
            raise ProtocolViolation(f"No route from endpoint {source} to endpoint {dest}") from None

    def send(self, dest: int, payload: Any, tag: Tag) -> None:
        route = self._route(self.endpoint, dest)
        try:
            route.put((int(tag), payload))
        except (ValueError, OSError) as e:
            raise CommunicationFailure(f"Send from {self.endpoint} to {dest} failed: {e}") from e

    def recv(self, source: int, tag: Tag) -> Any:
        route = self._route(source, self.endpoint)
        try:
            received_tag, payload = route.get(timeout=self.timeout)
        except queue.Empty:
            raise CommunicationFailure(
                f"Endpoint {self.endpoint} timed out waiting for {Tag(tag).name} from {source}"
            ) from None
        except (ValueError, OSError, EOFError) as e:
            raise CommunicationFailure(f"Receive at {self.endpoint} from {source} failed: {e}") from e

        if received_tag == Tag.ABORT:
            raise CommunicationFailure(f"Endpoint {source} aborted the run")
        if received_tag != tag:
            raise ProtocolViolation(
                f"Endpoint {self.endpoint} expected {Tag(tag).name} from {source}, "
                f"got {Tag(received_tag).name}"
            )
        return payload

    def barrier(self) -> None:
        try:
            self._barrier.wait(timeout=self.timeout)
        except threading.BrokenBarrierError:
            raise CommunicationFailure(f"Barrier broken or timed out at endpoint {self.endpoint}") from None

    def abort(self) -> None:
        logger.debug(f"Endpoint {self.endpoint} aborting channel")
        self._barrier.abort()
        for (source, _dest), route in self._routes.items():
            if source != self.endpoint:
                continue
            route.put((int(Tag.ABORT), None))
            # Don't block process exit on undelivered abort notices
            if hasattr(route, "cancel_join_thread"):
                route.cancel_join_thread()


class _QueueHub:
    """Shared routes and barrier from which endpoints are created."""

    def __init__(self, worker_count: int, timeout: Optional[float], queue_factory, barrier_factory) -> None:
        if worker_count <= 0:
            raise ValueError(f"Worker count must be positive, got {worker_count}")
        self.worker_count = worker_count
        self.timeout = timeout
        self.routes = {route: queue_factory() for route in channel_routes(worker_count)}
        self.barrier = barrier_factory(worker_count + 1)

    def endpoint(self, endpoint: int) -> QueueChannel:
        if endpoint != COORDINATOR and not 0 <= endpoint < self.worker_count:
            raise ValueError(f"Unknown endpoint {endpoint}")
        return QueueChannel(endpoint, self.worker_count, self.routes, self.barrier, self.timeout)

    def coordinator(self) -> QueueChannel:
        return self.endpoint(COORDINATOR)

    def workers(self) -> Iterable[QueueChannel]:
        return [self.endpoint(worker_id) for worker_id in range(self.worker_count)]


class ThreadHub(_QueueHub):
    """Channel for workers running as threads in one process."""

    def __init__(self, worker_count: int, timeout: Optional[float] = None) -> None:
        super().__init__(worker_count, timeout, queue.Queue, threading.Barrier)


class ProcessHub(_QueueHub):
    """Channel for workers running as separate processes."""

    def __init__(self, worker_count: int, timeout: Optional[float] = None, context=None) -> None:
        # Spawned workers start with a fresh interpreter instead of a forked torch runtime
        self.context = context or mp.get_context("spawn")
        super().__init__(worker_count, timeout, self.context.Queue, self.context.Barrier)
