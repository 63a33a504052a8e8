"""Grid, cell rule and patterns."""

from .grid import Grid
from .patterns import Pattern, PatternLibrary
from .rules import Cell, step_grid, step_partition

__all__ = ["Grid", "Pattern", "PatternLibrary", "Cell", "step_grid", "step_partition"]
