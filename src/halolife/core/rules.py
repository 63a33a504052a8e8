"""Cell states, transition rule and neighbor counting.

Neighbor counts are computed with a PyTorch convolution over a block of
rows. A partition is extended with its halo rows (or zero rows where no
neighbor exists) before counting, so the same kernel serves both the
partitioned step and the full-grid reference step.
"""

from enum import IntEnum
from typing import Optional
import numpy as np
import torch
import torch.nn.functional as F


class Cell(IntEnum):
    """Binary cell state."""

    DEAD = 0
    ALIVE = 1


REPRODUCE_NUM = 3  # exactly this and a cell comes to life
OVERPOPULATE_NUM = 3  # more than this and a cell dies
ISOLATION_NUM = 2  # fewer than this and a cell dies

CELL_DTYPE = np.int8

# Set single-threaded to avoid conflicts with worker threads/processes
torch.set_num_threads(1)

_KERNEL = torch.tensor([[1, 1, 1], [1, 0, 1], [1, 1, 1]], dtype=torch.float32).unsqueeze(0).unsqueeze(0)


def _convolve(block: np.ndarray) -> np.ndarray:
    """Sum the 8-neighborhood of every cell in a 2D block.

    Columns are zero padded; rows are not, so the caller decides what lies
    above and below the block.
    """
    tensor = torch.from_numpy(np.ascontiguousarray(block, dtype=np.float32)).unsqueeze(0).unsqueeze(0)
    counts = F.conv2d(tensor, _KERNEL, padding=(0, 1))
    return counts[0, 0].numpy().astype(CELL_DTYPE)


def count_partition_neighbors(
    local: np.ndarray,
    upper: Optional[np.ndarray] = None,
    lower: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Count living neighbors for every cell of a partition.

    Args:
        local: Partition cells, shape (rows, width)
        upper: Last row of the partition above, or None at the top edge
        lower: First row of the partition below, or None at the bottom edge

    Returns:
        Array of neighbor counts with the same shape as ``local``
    """
    width = local.shape[1]
    zeros = np.zeros((1, width), dtype=CELL_DTYPE)
    top = zeros if upper is None else np.asarray(upper, dtype=CELL_DTYPE).reshape(1, width)
    bottom = zeros if lower is None else np.asarray(lower, dtype=CELL_DTYPE).reshape(1, width)

    # Output of the valid-row convolution lines up with the local rows
    return _convolve(np.vstack([top, local, bottom]))


def count_all_neighbors(cells: np.ndarray) -> np.ndarray:
    """Count living neighbors on a full, bounded grid."""
    return count_partition_neighbors(cells)


def apply_rule(cells: np.ndarray, counts: np.ndarray) -> None:
    """Apply the transition rule in place using precomputed counts.

    A count of exactly ``REPRODUCE_NUM`` brings a cell to life, a count
    above ``OVERPOPULATE_NUM`` or below ``ISOLATION_NUM`` kills it. Any
    other count (only 2) leaves the cell as it was, dead or alive.
    """
    if cells.shape != counts.shape:
        raise ValueError(f"Count shape {counts.shape} doesn't match cells {cells.shape}")

    birth_mask = counts == REPRODUCE_NUM
    death_mask = (counts > OVERPOPULATE_NUM) | (counts < ISOLATION_NUM)

    cells[birth_mask] = Cell.ALIVE
    cells[death_mask] = Cell.DEAD


def step_partition(local: np.ndarray, upper: Optional[np.ndarray] = None, lower: Optional[np.ndarray] = None) -> None:
    """Advance a partition one generation in place.

    The count pass completes before any cell is updated.
    """
    counts = count_partition_neighbors(local, upper, lower)
    apply_rule(local, counts)


def step_grid(cells: np.ndarray) -> None:
    """Advance a whole grid one generation in place, without partitioning."""
    step_partition(cells)
