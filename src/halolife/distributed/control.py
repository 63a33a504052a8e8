"""Control values exchanged between the coordinator and its collaborators."""

from dataclasses import dataclass, replace
from typing import NamedTuple


@dataclass(frozen=True)
class ControlState:
    """Flags broadcast to every worker at the start of each cycle."""

    stop: bool = False
    animating: bool = True

    def stopped(self) -> "ControlState":
        return replace(self, stop=True)


class CellEdit(NamedTuple):
    """Discrete cell change applied to the global grid before a scatter."""

    x: int
    y: int
    value: int
