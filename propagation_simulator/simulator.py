from __future__ import annotations
from typing import Any, Dict, Optional, Type

import simpy
from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from propagation_simulator.consensus import ConsensusProtocol, GossipLongestChainProtocol
from propagation_simulator.event_queue import EventQueue
from propagation_simulator.events import FunctionEvent, NodeEvent
from propagation_simulator.node import NodeStore
from propagation_simulator.packet import AddressPacket, NewBlockSignal
from propagation_simulator.random_streams import SeededRandom
from propagation_simulator.settings import Settings
from propagation_simulator.telemetry import Telemetry
from propagation_simulator.trust import TrustAggregator


class SimulationContext:
    """Everything one run shares: clock, random streams, nodes, event queue and protocol."""

    def __init__(self, settings: Settings, protocol_class: Type[ConsensusProtocol] = GossipLongestChainProtocol):
        self.settings: Settings = settings
        self.env: simpy.Environment = simpy.Environment()
        self.random: SeededRandom = SeededRandom(settings.seed)
        self.telemetry: Telemetry = Telemetry(self.env)
        self.nodes: NodeStore = NodeStore(self)
        self.queue: EventQueue = EventQueue(self)
        self.trust: TrustAggregator = TrustAggregator(self)
        self.protocol: ConsensusProtocol = protocol_class(self)
        # Owned by the control surface, consulted by the queue before every event
        self.running: bool = False

    @property
    def now(self) -> float:
        return self.env.now


class BlockPropagationSimulator:
    def __init__(self,
                 protocol_class: Type[ConsensusProtocol] = GossipLongestChainProtocol,
                 settings: Optional[Settings] = None):
        self.protocol_class: Type[ConsensusProtocol] = protocol_class
        self.settings: Settings = settings or Settings()
        self.context: SimulationContext = SimulationContext(self.settings, protocol_class)

    def start(self, settings: Optional[Settings] = None) -> SimulationContext:
        """Starts a fresh run: nodes are admitted from time 0, blocks from `first_block_at`."""
        if settings is not None:
            self.settings = settings
        self.context = SimulationContext(self.settings, self.protocol_class)
        self.context.telemetry.log("Starting simulation")
        self.context.running = True
        self.context.queue.enqueue(FunctionEvent(self._add_nodes, {"first_nodes": [], "timestamp": 0}, 0))
        self.context.queue.enqueue(FunctionEvent(self._new_block, None, self.settings.first_block_at))
        return self.context

    def pause(self) -> None:
        """Stops after the event currently being processed."""
        self.context.telemetry.log("Pausing simulation")
        self.context.running = False

    def resume(self) -> None:
        self.context.telemetry.log("Resuming simulation")
        self.context.running = True
        self.context.queue.dequeue()

    def run(self, duration: float = 60_000, show_progress: bool = True, show_results: bool = True) -> SimulationContext:
        """Advances the simulation clock up to `duration` or until nothing is left to do."""
        env = self.context.env
        with tqdm(total=duration, desc="⏳ Simulation Progress", unit="ms", ascii=" ▖▘▝▗▚▞█", disable=not show_progress) as pbar:
            last_time = env.now
            while env.peek() <= duration:
                env.step()
                pbar.update(env.now - last_time)
                last_time = env.now
        if show_results:
            self._print_simulation_results()
        return self.context

    def _print_simulation_results(self) -> None:
        table = Table(title=f"📊 Simulation Results at {self.context.now:.0f} ms")
        table.add_column("Node", justify="right")
        table.add_column("Peers", justify="right")
        table.add_column("Blocks", justify="right")
        table.add_column("Ends", justify="right")
        table.add_column("Ledger")
        for node in self.context.nodes.values():
            table.add_row(str(node.address), str(node.peer_count), str(len(node.blockchain)),
                          str(len(node.blockchain.get_ends())), repr(node.blockchain))
        Console().print(table)

    # ----------------------------
    # Self-rescheduling simulation functions
    # ----------------------------

    def _add_nodes(self, state: Dict[str, Any]) -> None:
        """Admits nodes a few at a time until the network has the configured size.

        The first round creates the seed nodes and tells each of them about all the
        others. Every later node only knows the seed addresses when it joins.
        """
        context = self.context
        settings = context.settings
        first_nodes = state.setdefault("first_nodes", [])
        timestamp = state.setdefault("timestamp", 0)

        if not first_nodes:
            while len(context.nodes) < min(settings.start_nodes, settings.nodes):
                first_nodes.append(context.nodes.create())
            for address in first_nodes:
                packet = AddressPacket.create(context, to=address, sender=address, addresses=first_nodes)
                context.queue.enqueue(NodeEvent(packet, timestamp))
        else:
            target = min(len(context.nodes) + settings.nodes_to_add, settings.nodes)
            while len(context.nodes) < target:
                address = context.nodes.create()
                packet = AddressPacket.create(context, to=address, sender=address, addresses=first_nodes)
                context.queue.enqueue(NodeEvent(packet, timestamp))

        if len(context.nodes) < settings.nodes:
            next_timestamp = timestamp + settings.node_delay
            context.queue.enqueue(FunctionEvent(self._add_nodes, {"first_nodes": list(first_nodes), "timestamp": next_timestamp}, next_timestamp))

    def _new_block(self, state: Dict[str, Any]) -> None:
        """Gives a random node the right to publish a block, then schedules the next discovery."""
        context = self.context
        addresses = context.nodes.addresses()
        if addresses:
            finder = context.random.choice("consensus", addresses)
            context.queue.enqueue(NodeEvent(NewBlockSignal.create(context, to=finder), context.now))
        context.queue.enqueue(FunctionEvent(self._new_block, None, context.now + context.settings.block_delay))
