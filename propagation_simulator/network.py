from __future__ import annotations
import math
from typing import NamedTuple, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from propagation_simulator.random_streams import SeededRandom
    from propagation_simulator.settings import Settings


class Position(NamedTuple):
    x: float
    y: float


def random_position(random: 'SeededRandom', box_ratio: float = 1.0) -> Position:
    """Places a node somewhere in the network box. x spans the box ratio, y spans [0, 1)."""
    return Position(x=random.random("position", box_ratio), y=random.random("position"))


def distance(position1: Position, position2: Position, box_ratio: Optional[float] = None) -> float:
    """Euclidean distance. With a box ratio the result is in UI units instead of simulation units."""
    length = math.hypot(position1.x - position2.x, position1.y - position2.y)
    if box_ratio:
        return length / box_ratio
    return length


def middle(position1: Position, position2: Position, box_ratio: Optional[float] = None) -> Position:
    x = (position1.x + position2.x) / 2
    if box_ratio:
        x /= box_ratio
    return Position(x=x, y=(position1.y + position2.y) / 2)


def slope(position1: Position, position2: Position) -> float:
    """Slope of the line between two nodes, in degrees."""
    dx = position1.x - position2.x
    if dx == 0:
        return 90.0
    return math.degrees(math.atan((position1.y - position2.y) / dx))


def propagation_delay(length: float, settings: 'Settings') -> float:
    """How long a packet travels across `length` of the network."""
    return length * settings.propagation_delay
