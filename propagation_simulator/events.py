from __future__ import annotations
from typing import Any, Callable, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from propagation_simulator.packet import Packet


class SimulationEvent:
    """Something that happens at a point on the simulation timeline.

    The set of event kinds is closed: FunctionEvent and NodeEvent.
    """

    def __init__(self, timestamp: float = 0):
        self.timestamp: float = timestamp

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if cls.__module__ != __name__:
            raise TypeError(f"{cls.__name__}: simulation events are either a FunctionEvent or a NodeEvent")


class FunctionEvent(SimulationEvent):
    """Runs a simulation function at a given time, e.g. admitting nodes or discovering a block.

    The function receives `context`, a dict it can use to carry state into the next
    event it schedules for itself.
    """

    def __init__(self, run: Callable[[Dict[str, Any]], Any], context: Optional[Dict[str, Any]] = None, timestamp: float = 0):
        super().__init__(timestamp)
        self.run = run
        self.context: Dict[str, Any] = context if context is not None else {}

    def __repr__(self):
        return f"FunctionEvent({getattr(self.run, '__name__', self.run)}, time={self.timestamp})"


class NodeEvent(SimulationEvent):
    """A packet arriving at a node. `sent_at` is when it left, it arrives `packet.delay` later."""

    def __init__(self, packet: 'Packet', sent_at: float):
        super().__init__(sent_at + packet.delay)
        self.packet = packet
        self.sent_at = sent_at

    def __repr__(self):
        return f"NodeEvent({self.packet.summary} {self.packet.sender}->{self.packet.to}, time={self.timestamp})"
