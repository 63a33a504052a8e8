"""Exceptions raised by the distributed engine.

Every failure is fatal to the run. Coordinator and workers attach the
generation number and the phase in which the failure happened before
re-raising.
"""

from typing import Optional


class EngineError(Exception):
    """Base class for engine failures."""

    def __init__(self, message: str, generation: Optional[int] = None, phase: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.generation = generation
        self.phase = phase

    def annotate(self, generation: int, phase: str) -> "EngineError":
        """Record where the failure happened unless already recorded."""
        if self.generation is None:
            self.generation = generation
        if self.phase is None:
            self.phase = phase
        return self

    def __str__(self) -> str:
        location = []
        if self.generation is not None:
            location.append(f"generation {self.generation}")
        if self.phase is not None:
            location.append(f"phase '{self.phase}'")
        if location:
            return f"{self.message} ({', '.join(location)})"
        return self.message

    def __reduce__(self):
        # Keep location attributes when errors cross process boundaries
        return (type(self), (self.message, self.generation, self.phase))


class InvalidPartition(EngineError, ValueError):
    """Worker count cannot be mapped onto the grid rows."""


class ProtocolViolation(EngineError):
    """A message had the wrong size, sender or stage."""


class CommunicationFailure(EngineError):
    """A channel operation could not complete."""
