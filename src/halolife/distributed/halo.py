"""Four-stage halo exchange between spatially adjacent workers.

Each worker needs the last row of the worker above it and the first row
of the worker below it. Rows move in four ordered stages, with even and
odd worker ids taking turns as senders and receivers so that no two
neighbors ever wait on each other at the same time::

    stage 1  even -> odd   last row forward   (odd fills upper)
    stage 2  odd  -> even  last row forward   (even fills upper)
    stage 3  even -> odd   first row backward (odd fills lower)
    stage 4  odd  -> even  first row backward (even fills lower)
"""

from dataclasses import dataclass
from typing import Any, Optional
import numpy as np

from ..core.rules import CELL_DTYPE
from .channel import MessageChannel, Tag
from .errors import ProtocolViolation


@dataclass(frozen=True)
class WorkerContext:
    """Identity of a worker within the run."""

    id: int
    total_workers: int

    def __post_init__(self):
        if not 0 <= self.id < self.total_workers:
            raise ValueError(f"Worker id {self.id} outside 0..{self.total_workers - 1}")

    @property
    def is_even(self) -> bool:
        return self.id % 2 == 0

    @property
    def is_first(self) -> bool:
        return self.id == 0

    @property
    def is_last(self) -> bool:
        return self.id == self.total_workers - 1

    @property
    def has_upper_neighbor(self) -> bool:
        return not self.is_first

    @property
    def has_lower_neighbor(self) -> bool:
        return not self.is_last


class HaloBuffer:
    """Boundary rows received from neighboring workers.

    Edge workers hold one row, interior workers two, a lone worker none.
    Rows are overwritten every generation and read-only during the update.
    """

    def __init__(self, context: WorkerContext, width: int) -> None:
        self.width = width
        slots = int(context.has_upper_neighbor) + int(context.has_lower_neighbor)
        self._rows = np.zeros((slots, width), dtype=CELL_DTYPE)
        self._upper_index = 0 if context.has_upper_neighbor else None
        if context.has_lower_neighbor:
            self._lower_index = slots - 1
        else:
            self._lower_index = None

    @property
    def row_count(self) -> int:
        return self._rows.shape[0]

    @property
    def upper(self) -> Optional[np.ndarray]:
        """Last row of the worker above, or None at the top edge."""
        if self._upper_index is None:
            return None
        return self._rows[self._upper_index]

    @property
    def lower(self) -> Optional[np.ndarray]:
        """First row of the worker below, or None at the bottom edge."""
        if self._lower_index is None:
            return None
        return self._rows[self._lower_index]

    def store_upper(self, row: Any) -> None:
        if self._upper_index is None:
            raise ProtocolViolation("Top worker has no upper halo slot")
        self._rows[self._upper_index] = self._validate(row)

    def store_lower(self, row: Any) -> None:
        if self._lower_index is None:
            raise ProtocolViolation("Bottom worker has no lower halo slot")
        self._rows[self._lower_index] = self._validate(row)

    def _validate(self, row: Any) -> np.ndarray:
        row = np.asarray(row)
        if row.shape != (self.width,):
            raise ProtocolViolation(f"Halo row has shape {row.shape}, expected ({self.width},)")
        return row


def exchange_halos(context: WorkerContext, channel: MessageChannel, local: np.ndarray, halo: HaloBuffer) -> None:
    """Run the four exchange stages for one worker.

    After returning, ``halo`` holds the boundary rows every existing
    neighbor had before this generation's update.

    Args:
        context: This worker's identity
        channel: This worker's channel endpoint
        local: This worker's partition, shape (rows, width)
        halo: Buffer to fill
    """
    if context.total_workers == 1:
        return

    me = context.id
    first_row = local[0].copy()
    last_row = local[-1].copy()

    # Stage 1: even workers send their last row forward
    if context.is_even:
        if not context.is_last:
            channel.send(me + 1, last_row, Tag.FORWARD_EVEN)
    else:
        halo.store_upper(channel.recv(me - 1, Tag.FORWARD_EVEN))

    # Stage 2: odd workers send their last row forward
    if not context.is_even:
        if not context.is_last:
            channel.send(me + 1, last_row, Tag.FORWARD_ODD)
    elif not context.is_first:
        halo.store_upper(channel.recv(me - 1, Tag.FORWARD_ODD))

    # Stage 3: even workers send their first row backward
    if context.is_even:
        if not context.is_first:
            channel.send(me - 1, first_row, Tag.BACKWARD_EVEN)
    elif not context.is_last:
        halo.store_lower(channel.recv(me + 1, Tag.BACKWARD_EVEN))

    # Stage 4: odd workers send their first row backward
    if not context.is_even:
        channel.send(me - 1, first_row, Tag.BACKWARD_ODD)
    elif not context.is_last:
        halo.store_lower(channel.recv(me + 1, Tag.BACKWARD_ODD))
