"""Frontend interfaces for the distributed engine."""

from .cli import main

__all__ = ["main"]
