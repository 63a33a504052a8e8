"""Partitioning, message passing and lockstep orchestration."""

from .channel import COORDINATOR, MessageChannel, ProcessHub, Tag, ThreadHub
from .control import CellEdit, ControlState
from .coordinator import Coordinator, RunResult
from .engine import DistributedEngine, EngineConfig, run_multiprocess, run_threaded
from .errors import CommunicationFailure, EngineError, InvalidPartition, ProtocolViolation
from .halo import HaloBuffer, WorkerContext, exchange_halos
from .planner import PartitionPlan, PartitionSlot, compute_plan
from .worker import PartitionWorker

__all__ = [
    "COORDINATOR",
    "MessageChannel",
    "ProcessHub",
    "Tag",
    "ThreadHub",
    "CellEdit",
    "ControlState",
    "Coordinator",
    "RunResult",
    "DistributedEngine",
    "EngineConfig",
    "run_multiprocess",
    "run_threaded",
    "CommunicationFailure",
    "EngineError",
    "InvalidPartition",
    "ProtocolViolation",
    "HaloBuffer",
    "WorkerContext",
    "exchange_halos",
    "PartitionPlan",
    "PartitionSlot",
    "compute_plan",
    "PartitionWorker",
]
