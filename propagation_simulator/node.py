from __future__ import annotations
import itertools
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple, TYPE_CHECKING

from propagation_simulator.blockchain import BlockChain
from propagation_simulator.network import Position, distance, middle, random_position, slope

if TYPE_CHECKING:
    from propagation_simulator.simulator import SimulationContext


@dataclass
class PeerData:
    """What a node knows about one of its peers."""
    distance: float
    last_transmit: Optional[float] = None
    last_receive: Optional[float] = None


# ============================
# NODE STATE
# ============================

class NodeData:
    """Permanent storage of one node: its address, position, peers and ledger.

    The consensus protocol may keep any private state it needs in `memory`.
    """

    def __init__(self, address: int, position: Position, context: 'SimulationContext'):
        self._address = address
        self._position = position
        self.context = context
        self._peers: Dict[int, PeerData] = {}
        self.blockchain = BlockChain()
        self.memory: Dict[str, Any] = {}

    @property
    def address(self) -> int:
        return self._address

    @property
    def position(self) -> Position:
        return self._position

    @property
    def peer_count(self) -> int:
        return len(self._peers)

    def peer_addresses(self) -> List[int]:
        return list(self._peers)

    def peer_items(self) -> List[Tuple[int, PeerData]]:
        return list(self._peers.items())

    def get_peer(self, address: int) -> Optional[PeerData]:
        return self._peers.get(address)

    def has_peer(self, address: int) -> bool:
        return address in self._peers

    def set_peer(self, address: int, peer: PeerData) -> None:
        if address not in self._peers:
            self.context.telemetry.emit("connection-changed", **self._connection_data(address))
        self._peers[address] = peer

    def delete_peer(self, address: int) -> None:
        if address not in self._peers:
            return
        self.context.telemetry.emit("connection-changed", active=False, **self._connection_data(address))
        del self._peers[address]

    def _connection_data(self, address: int) -> Dict[str, Any]:
        other = self.context.nodes.get(address).position
        box_ratio = self.context.settings.box_ratio
        return {
            "id": f"{self._address}-{address}",
            "length": distance(self._position, other, box_ratio),
            "slope": slope(self._position, other),
            "position": middle(self._position, other, box_ratio)._asdict(),
        }

    def __repr__(self):
        return f"Node(address={self._address}, peers={self.peer_count}, blocks={len(self.blockchain)})"


class NodeStore:
    """All node states of a simulation, keyed by address. Nodes are never removed."""

    def __init__(self, context: 'SimulationContext'):
        self.context = context
        self._nodes: Dict[int, NodeData] = {}
        self._next_address = itertools.count(1)

    def create(self) -> int:
        """Admits a new node to the network and returns its address."""
        position = random_position(self.context.random, self.context.settings.box_ratio)
        node = NodeData(next(self._next_address), position, self.context)
        self._nodes[node.address] = node
        self.context.telemetry.emit("node-created", address=node.address, position=position._asdict())
        logging.info(f"Time {self.context.now:.2f}: Node {node.address} joined at ({position.x:.3f}, {position.y:.3f})")
        return node.address

    def get(self, address: int) -> NodeData:
        try:
            return self._nodes[address]
        except KeyError:
            raise KeyError(f"No node with address {address}") from None

    def update(self, node: NodeData) -> None:
        """Saves the state a protocol returned for a node."""
        self._nodes[node.address] = node

    def addresses(self) -> List[int]:
        return list(self._nodes)

    def values(self) -> List[NodeData]:
        return list(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, address: int) -> bool:
        return address in self._nodes

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._nodes))
