from __future__ import annotations
import inspect
import logging
import time
from typing import Generator, List, Optional, Sequence, TYPE_CHECKING, Union

import simpy

from propagation_simulator.errors import CollaboratorError, SimulationError
from propagation_simulator.events import FunctionEvent, NodeEvent, SimulationEvent

if TYPE_CHECKING:
    from propagation_simulator.simulator import SimulationContext


class EventQueue:
    """Events that have not happened yet, executed in chronological order.

    Draining runs as a single simpy process. Enqueueing from inside an event (a node
    answering with packets, a function rescheduling itself) just adds to the backlog
    the running drain is already working through.
    """

    def __init__(self, context: 'SimulationContext'):
        self.context = context
        self.env: simpy.Environment = context.env
        self._events: List[SimulationEvent] = []
        self._is_sorted: bool = True
        self._draining: bool = False
        self.dispatched: List[SimulationEvent] = []

    def __len__(self) -> int:
        return len(self._events)

    @property
    def pending(self) -> List[SimulationEvent]:
        self._sort()
        return list(self._events)

    @property
    def is_draining(self) -> bool:
        return self._draining

    def enqueue(self, new_events: Union[SimulationEvent, Sequence[SimulationEvent]]) -> None:
        """Adds one or more events and makes sure they will be drained."""
        if isinstance(new_events, SimulationEvent):
            new_events = [new_events]
        for event in new_events:
            if isinstance(event, NodeEvent) and not event.packet.is_internal:
                self._announce(event)
            self._events.append(event)
        self._is_sorted = False
        self.dequeue()

    def dequeue(self) -> Optional[simpy.Process]:
        """Starts draining the queue, unless a drain is already running or the run is paused."""
        if self._draining or not self._events or not self.context.running:
            return None
        self._draining = True
        return self.env.process(self._drain())

    def _sort(self) -> None:
        if not self._is_sorted:
            # Stable, so events with equal timestamps keep their enqueue order
            self._events.sort(key=lambda event: event.timestamp)
            self._is_sorted = True

    def _drain(self) -> Generator:
        started = time.monotonic()
        try:
            while self._events and self.context.running:
                self._sort()
                wait = self._events[0].timestamp - self.env.now
                if wait > 0:
                    yield self.env.timeout(wait)
                    if not self.context.running:
                        break
                    # Something earlier may have been enqueued while the clock advanced
                    self._sort()
                event = self._events.pop(0)
                self.dispatched.append(event)

                if isinstance(event, FunctionEvent):
                    self._run_function(event)
                elif isinstance(event, NodeEvent):
                    yield from self._deliver(event)
                else:
                    raise SimulationError(f"Unknown event type {type(event).__name__}")

                # Checked after dispatching, so every resume makes progress
                if self._events and time.monotonic() - started > self.context.settings.max_drain_seconds:
                    logging.debug(f"Time {self.env.now:.2f}: yielding with {len(self._events)} events left")
                    yield self.env.timeout(0)
                    started = time.monotonic()
        except Exception:
            self.context.running = False
            raise
        finally:
            self._draining = False

    def _run_function(self, event: FunctionEvent) -> None:
        try:
            event.run(event.context)
        except Exception as error:
            self.context.telemetry.error("An internal function encountered an error", error)
            if isinstance(error, SimulationError):
                raise
            raise SimulationError(f"Function event {event!r} failed at time {self.env.now:.2f}") from error

    def _deliver(self, event: NodeEvent) -> Generator:
        """Hands a packet to the consensus protocol of its node and applies the outcome."""
        packet = event.packet
        origin = "a higher power" if packet.is_internal else f"node {packet.sender}"
        self.context.telemetry.log(f"Let node {packet.to} process {packet.summary} from {origin}")

        try:
            node = self.context.nodes.get(packet.to)
            result = self.context.protocol.process(packet, node)
            # Protocols may run as a simpy process of their own; the timeline waits for them
            if inspect.isgenerator(result):
                result = yield self.env.process(result)
            elif isinstance(result, simpy.events.Event):
                result = yield result
            node, send_packets = result
        except Exception as error:
            self.context.telemetry.error("The node algorithm encountered an error", error)
            raise CollaboratorError(
                f"Node {packet.to} failed to process {packet.summary} from {origin}: {error}",
                address=packet.to,
                packet_summary=packet.summary,
            ) from error

        try:
            self._color_node(node)
            self.context.nodes.update(node)
            node.blockchain.tidy(self.context.settings.tidy_max_iterations)
            self.context.trust.aggregate()
            for outgoing in send_packets:
                self.enqueue(NodeEvent(outgoing, self.env.now))
        except Exception as error:
            self.context.telemetry.error("An error was encountered while handling the result of the node process", error)
            raise

    def _color_node(self, node) -> None:
        """Tells the UI which chain ends the node knows, with the average trust of each."""
        colors = []
        for entry in node.blockchain.end_entries():
            blocks = entry.chain.blocks
            colors.append({"color": entry.block.block_id, "trust": sum(block.trust for block in blocks) / len(blocks)})
        self.context.telemetry.emit("node-color", address=node.address, colors=colors)

    def _announce(self, event: NodeEvent) -> None:
        packet = event.packet
        block = getattr(packet, "block", None)
        self.context.telemetry.emit(
            "packet-in-flight",
            kind=packet.kind.value,
            delay=packet.delay,
            sender=packet.sender,
            to=packet.to,
            block_id=block.block_id if block is not None else None,
            position={
                "to": self.context.nodes.get(packet.to).position._asdict(),
                "from": self.context.nodes.get(packet.sender).position._asdict(),
            },
        )
