"""Row-wise domain decomposition of the global grid."""

from dataclasses import dataclass
from typing import Iterator, List, Sequence, Tuple
import logging
import numpy as np

from .errors import InvalidPartition, ProtocolViolation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartitionSlot:
    """Contiguous row range owned by one worker."""

    worker_id: int
    row_count: int
    row_offset: int

    @property
    def row_end(self) -> int:
        return self.row_offset + self.row_count


@dataclass(frozen=True)
class PartitionPlan:
    """Ordered, gap-free assignment of grid rows to workers."""

    height: int
    slots: Tuple[PartitionSlot, ...]

    @property
    def worker_count(self) -> int:
        return len(self.slots)

    def __len__(self) -> int:
        return len(self.slots)

    def __iter__(self) -> Iterator[PartitionSlot]:
        return iter(self.slots)

    def __getitem__(self, worker_id: int) -> PartitionSlot:
        return self.slots[worker_id]

    def scatter(self, cells: np.ndarray) -> List[np.ndarray]:
        """Split a (height, width) array into one row block per worker.

        Blocks are copies, so workers never alias the global grid.
        """
        if cells.shape[0] != self.height:
            raise ValueError(f"Grid has {cells.shape[0]} rows, plan expects {self.height}")
        return [cells[slot.row_offset : slot.row_end].copy() for slot in self.slots]

    def gather(self, parts: Sequence[np.ndarray], out: np.ndarray) -> None:
        """Write worker blocks back into ``out`` at their planned offsets.

        Raises:
            ProtocolViolation: If a block count or shape doesn't match the plan
        """
        if len(parts) != len(self.slots):
            raise ProtocolViolation(f"Expected {len(self.slots)} partitions, got {len(parts)}")

        for slot, part in zip(self.slots, parts):
            expected = (slot.row_count, out.shape[1])
            if part is None or np.shape(part) != expected:
                raise ProtocolViolation(
                    f"Worker {slot.worker_id} returned shape {np.shape(part)}, expected {expected}"
                )
            out[slot.row_offset : slot.row_end] = part


def compute_plan(height: int, worker_count: int) -> PartitionPlan:
    """Assign contiguous row ranges of a grid to workers.

    Every worker receives ``height // worker_count`` rows; the last
    ``height % worker_count`` workers (highest ids) receive one extra row.
    Offsets are the prefix sum of row counts in worker-id order.

    Args:
        height: Number of grid rows
        worker_count: Number of workers

    Returns:
        The partition plan

    Raises:
        InvalidPartition: If a worker would receive no rows
    """
    if worker_count <= 0:
        raise InvalidPartition(f"Worker count must be positive, got {worker_count}")
    if height <= 0:
        raise InvalidPartition(f"Grid height must be positive, got {height}")
    if worker_count > height:
        raise InvalidPartition(f"Cannot split {height} rows across {worker_count} workers")

    base, remainder = divmod(height, worker_count)
    first_extra = worker_count - remainder

    slots = []
    offset = 0
    for worker_id in range(worker_count):
        row_count = base + 1 if worker_id >= first_extra else base
        slots.append(PartitionSlot(worker_id, row_count, offset))
        offset += row_count

    plan = PartitionPlan(height, tuple(slots))
    logger.debug(f"Planned {height} rows across {worker_count} workers: {[s.row_count for s in slots]}")
    return plan
