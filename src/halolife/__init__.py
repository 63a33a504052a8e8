"""Distributed, generation-synchronous Game of Life engine."""

__version__ = "0.1.0"

from .core.grid import Grid
from .core.patterns import Pattern, PatternLibrary
from .distributed.engine import DistributedEngine, EngineConfig, run_threaded, run_multiprocess

__all__ = ["Grid", "Pattern", "PatternLibrary", "DistributedEngine", "EngineConfig", "run_threaded", "run_multiprocess"]
