from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Dict, List, NamedTuple, Optional, TYPE_CHECKING

from propagation_simulator.block import Block
from propagation_simulator.blockchain import BlockChain
from propagation_simulator.network import distance
from propagation_simulator.node import NodeData, PeerData
from propagation_simulator.packet import AddressPacket, BlockPacket, Packet, PacketKind

if TYPE_CHECKING:
    from propagation_simulator.simulator import SimulationContext


class ProcessResult(NamedTuple):
    node: NodeData
    send_packets: List[Packet]


# ============================
# CONSENSUS PROTOCOL ABSTRACT CLASS
# ============================

class ConsensusProtocol(ABC):
    """Abstract class for the per-protocol node algorithm.

    The simulation hands every packet to `process` together with the state of the
    receiving node, saves the state it returns and delivers the packets it returns.
    Implementations must be deterministic given the packet, the node state and the
    seeded random streams of the context.
    """

    def __init__(self, context: 'SimulationContext'):
        self.context = context

    @abstractmethod
    def process(self, packet: Packet, node: NodeData) -> ProcessResult:
        """
        Processes one packet on one node.

        :param packet: The packet that arrived.
        :param node: State of the node it arrived at.
        :return: The new node state and the packets the node sends out. May also be
            returned from a generator, which then runs as a simpy process.
        """
        pass


# ============================
# CONSENSUS PROTOCOL IMPLEMENTATIONS
# ============================

class GossipLongestChainProtocol(ConsensusProtocol):
    """Gossips addresses and blocks to a few close peers and builds on the deepest chain end.

    A node talks to its five nearest known nodes plus the one farthest away. Blocks gain
    trust for every block built on top of them, and forks more than `prune_depth`
    blocks behind the deepest end are dropped.
    """
    active_peers: int = 5
    trust_step: float = 0.1
    prune_depth: Optional[int] = 3

    def process(self, packet: Packet, node: NodeData) -> ProcessResult:
        now = self.context.now
        heard: Dict[int, float] = node.memory.setdefault("heard_addresses", {})

        if packet.kind is PacketKind.ADDRESS:
            send_packets = self._receive_addresses(packet, node, heard, now)
        elif packet.kind is PacketKind.BLOCK:
            send_packets = self._receive_block(packet, node)
        elif packet.kind is PacketKind.NEW_BLOCK:
            send_packets = self._publish_block(node)
        else:
            raise TypeError(f"Unknown packet kind {packet.kind!r}")

        self.update_trust(node.blockchain)
        self.prune_abandoned_branches(node.blockchain)

        for outgoing in send_packets:
            peer = node.get_peer(outgoing.to)
            if peer is not None:
                peer.last_transmit = now
        if not packet.is_internal:
            peer = node.get_peer(packet.sender)
            if peer is not None:
                peer.last_receive = now
            heard[packet.sender] = now

        return ProcessResult(node, send_packets)

    def _receive_addresses(self, packet: AddressPacket, node: NodeData, heard: Dict[int, float], now: float) -> List[Packet]:
        addresses = [address for address in packet.addresses if address != node.address]
        new_addresses = [address for address in addresses if address not in heard]
        for address in addresses:
            heard[address] = now

        box_ratio = self.context.settings.box_ratio
        contenders = [(peer.distance, address) for address, peer in node.peer_items()]
        for address in new_addresses:
            if not node.has_peer(address):
                other = self.context.nodes.get(address).position
                contenders.append((distance(node.position, other, box_ratio), address))
        contenders.sort()

        for i, (length, address) in enumerate(contenders):
            if i < self.active_peers or i == len(contenders) - 1:
                if not node.has_peer(address):
                    node.set_peer(address, PeerData(distance=length))
            else:
                node.delete_peer(address)

        send_packets: List[Packet] = []
        for address, peer in node.peer_items():
            if peer.last_transmit is None:
                send_packets.append(AddressPacket.create(self.context, to=address, sender=node.address, addresses=[node.address]))
        if new_addresses:
            for address in node.peer_addresses():
                if address not in new_addresses:
                    send_packets.append(AddressPacket.create(self.context, to=address, sender=node.address, addresses=new_addresses))
        return send_packets

    def _receive_block(self, packet: BlockPacket, node: NodeData) -> List[Packet]:
        if not node.blockchain.add(packet.block):
            return []
        return self._broadcast(node, packet.block)

    def _publish_block(self, node: NodeData) -> List[Packet]:
        best = None
        for entry in node.blockchain.end_entries():
            if best is None or entry.global_index >= best.global_index:
                best = entry
        previous_id = best.block.block_id if best is not None else None
        block = Block.create(self.context.random, previous_id)
        node.blockchain.add(block)
        return self._broadcast(node, block)

    def _broadcast(self, node: NodeData, block: Block) -> List[Packet]:
        return [BlockPacket.create(self.context, to=address, sender=node.address, block=block)
                for address in node.peer_addresses()]

    def update_trust(self, blockchain: BlockChain) -> None:
        """Sets trust by how many blocks are built on top: `trust_step` per block, saturating at 1."""
        for block in blockchain:
            block.trust = 0
        pending = [(end.previous_id, 0.0) for end in blockchain.get_ends()]
        while pending:
            block_id, trust = pending.pop()
            if block_id is None:
                continue
            trust = min(1.0, trust + self.trust_step)
            previous_ids = set()
            for entry in blockchain.find_all(block_id):
                entry.block.trust = max(entry.block.trust, trust)
                previous_ids.add(entry.block.previous_id)
            pending.extend((previous_id, trust) for previous_id in previous_ids)

    def prune_abandoned_branches(self, blockchain: BlockChain) -> None:
        """Drops chain ends that are clearly not going to be continued."""
        if self.prune_depth is None:
            return
        ends = blockchain.end_entries()
        if len(ends) < 2:
            return
        deepest = max(entry.global_index for entry in ends)
        stale = [entry.chain_indexes for entry in ends if entry.global_index < deepest - self.prune_depth]
        for chain_indexes in sorted(stale, reverse=True):
            blockchain.remove_branch(chain_indexes, tidy=False)
        if stale:
            blockchain.tidy()
