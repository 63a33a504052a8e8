"""Global grid data structure owned by the coordinator."""

from typing import Iterable, Iterator, Optional, Tuple
import logging
import numpy as np

from .rules import CELL_DTYPE, Cell

logger = logging.getLogger(__name__)


class Grid:
    """Represents the authoritative 2D grid of binary cells.

    Cells are stored row-major in a numpy array indexed as ``[y, x]``.
    Edges are bounded: cells beyond the border count as dead.
    """

    def __init__(self, width: int, height: Optional[int] = None) -> None:
        """Initialize a new grid with every cell dead.

        Args:
            width: Number of columns
            height: Number of rows (defaults to ``width`` for a square grid)
        """
        height = width if height is None else height
        if width <= 0 or height <= 0:
            raise ValueError(f"Grid dimensions must be positive, got {width}x{height}")

        self.width = width
        self.height = height
        self._cells = np.zeros((height, width), dtype=CELL_DTYPE)

    @classmethod
    def square(cls, grid_size: int) -> "Grid":
        """Create a ``grid_size`` x ``grid_size`` grid."""
        return cls(grid_size, grid_size)

    @property
    def cells(self) -> np.ndarray:
        """Get the current cell array, shape (height, width)."""
        return self._cells

    @property
    def shape(self) -> Tuple[int, int]:
        """Get grid dimensions as (height, width)."""
        return (self.height, self.width)

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get_cell(self, x: int, y: int) -> bool:
        """Get the state of a cell.

        Args:
            x: Column coordinate
            y: Row coordinate

        Returns:
            True if cell is alive, False if dead

        Raises:
            IndexError: If coordinates are out of bounds
        """
        if not self.in_bounds(x, y):
            raise IndexError(f"Coordinates ({x}, {y}) out of bounds")

        return bool(self._cells[y, x])

    def set_cell(self, x: int, y: int, alive: bool) -> None:
        """Set the state of a cell.

        Raises:
            IndexError: If coordinates are out of bounds
        """
        if not self.in_bounds(x, y):
            raise IndexError(f"Coordinates ({x}, {y}) out of bounds")

        self._cells[y, x] = Cell.ALIVE if alive else Cell.DEAD

    def apply_edits(self, edits: Iterable) -> int:
        """Apply discrete ``(x, y, value)`` edits, skipping out-of-range ones.

        Returns:
            Number of edits applied
        """
        applied = 0
        for x, y, value in edits:
            if not self.in_bounds(x, y):
                logger.debug(f"Ignoring edit outside grid at ({x}, {y})")
                continue
            self._cells[y, x] = Cell(int(value))
            applied += 1
        return applied

    def clear(self) -> None:
        """Clear all cells (set all to dead)."""
        self._cells.fill(Cell.DEAD)

    def randomize(self, probability: float = 0.1, seed: Optional[int] = None) -> None:
        """Randomly populate the grid.

        Args:
            probability: Chance each cell will be alive (0.0 to 1.0)
            seed: Optional seed for reproducible fills
        """
        rng = np.random.default_rng(seed)
        mask = rng.random((self.height, self.width)) < probability
        self._cells[mask] = Cell.ALIVE
        self._cells[~mask] = Cell.DEAD

    def snapshot(self) -> Tuple[int, ...]:
        """Flat row-major sequence of ``height * width`` cell states."""
        return tuple(int(v) for v in self._cells.ravel())

    @property
    def population(self) -> int:
        """Get the number of living cells."""
        return int(np.sum(self._cells > 0))

    def living_cells(self) -> Iterator[Tuple[int, int]]:
        """Yield (x, y) coordinates of living cells."""
        ys, xs = np.nonzero(self._cells)
        for x, y in zip(xs, ys):
            yield (int(x), int(y))

    def copy(self) -> "Grid":
        other = Grid(self.width, self.height)
        other._cells[:] = self._cells
        return other

    def __eq__(self, other: object) -> bool:
        """Check if two grids are equal."""
        if not isinstance(other, Grid):
            return False
        return self.shape == other.shape and np.array_equal(self._cells, other._cells)

    def __str__(self) -> str:
        """String representation showing living cells as '*' and dead as '.'."""
        return "\n".join("".join("*" if cell else "." for cell in row) for row in self._cells)
