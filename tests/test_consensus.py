"""
Tests for the gossip reference protocol.
"""

import pytest

from propagation_simulator.block import Block
from propagation_simulator.blockchain import BlockChain
from propagation_simulator.consensus import GossipLongestChainProtocol
from propagation_simulator.packet import AddressPacket, BlockPacket, NewBlockSignal, PacketKind
from propagation_simulator.simulator import SimulationContext


# ===== FIXTURES =====

@pytest.fixture
def gossip(settings):
    context = SimulationContext(settings, GossipLongestChainProtocol)
    context.running = True
    for _ in range(3):
        context.nodes.create()
    return context


def introduce(context, address, addresses):
    packet = AddressPacket.create(context, to=address, sender=address, addresses=addresses)
    return context.protocol.process(packet, context.nodes.get(address))


class TestAddressGossip:
    """Test peer discovery."""

    def test_known_addresses_become_peers(self, gossip):
        node, send_packets = introduce(gossip, 1, [1, 2, 3])
        assert sorted(node.peer_addresses()) == [2, 3]
        assert sorted(packet.to for packet in send_packets) == [2, 3]
        assert all(packet.addresses == (1,) for packet in send_packets)
        assert all(node.get_peer(address).last_transmit == gossip.now for address in (2, 3))

    def test_already_introduced_peers_are_not_greeted_twice(self, gossip):
        introduce(gossip, 1, [1, 2, 3])
        _, send_packets = introduce(gossip, 1, [2, 3])
        assert send_packets == []

    def test_new_address_is_forwarded_to_existing_peers(self, gossip):
        introduce(gossip, 1, [1, 2])
        packet = AddressPacket.create(gossip, to=1, sender=2, addresses=[3])
        node, send_packets = gossip.protocol.process(packet, gossip.nodes.get(1))
        assert node.has_peer(3)
        forwarded = [p for p in send_packets if p.to == 2]
        assert forwarded and forwarded[0].addresses == (3,)
        assert node.get_peer(2).last_receive == gossip.now

    def test_peer_set_is_limited(self, settings):
        context = SimulationContext(settings, GossipLongestChainProtocol)
        addresses = [context.nodes.create() for _ in range(8)]
        node, _ = introduce(context, 1, addresses)
        assert node.peer_count == GossipLongestChainProtocol.active_peers + 1
        assert len(context.telemetry.of_type("connection-changed")) == node.peer_count


class TestBlockGossip:
    """Test publishing and relaying blocks."""

    def test_published_block_is_sent_to_every_peer(self, gossip):
        introduce(gossip, 1, [1, 2, 3])
        signal = NewBlockSignal.create(gossip, to=1)
        node, send_packets = gossip.protocol.process(signal, gossip.nodes.get(1))
        assert len(node.blockchain) == 1
        assert sorted(packet.to for packet in send_packets) == [2, 3]
        assert all(packet.kind is PacketKind.BLOCK for packet in send_packets)
        assert send_packets[0].block.key == node.blockchain.blocks[0].key

    def test_new_block_builds_on_deepest_end(self, gossip):
        node = gossip.nodes.get(1)
        for block in (Block("a"), Block("b", "a"), Block("c", "b"), Block("x", "a")):
            node.blockchain.add(block)
        gossip.protocol.process(NewBlockSignal.create(gossip, to=1), node)
        assert [block.previous_id for block in node.blockchain.get_ends()] == ["c", "a"]

    def test_known_block_is_not_relayed(self, gossip):
        introduce(gossip, 2, [1, 2, 3])
        packet = BlockPacket.create(gossip, to=2, sender=1, block=Block("a"))
        node, send_packets = gossip.protocol.process(packet, gossip.nodes.get(2))
        assert node.blockchain.has("a")
        assert len(send_packets) == node.peer_count
        _, send_packets = gossip.protocol.process(packet, node)
        assert send_packets == []


class TestTrustAndPruning:
    """Test the local trust and pruning rules."""

    def test_trust_grows_with_depth(self, gossip):
        chain = BlockChain()
        for block in (Block("a"), Block("b", "a"), Block("c", "b")):
            chain.add(block)
        gossip.protocol.update_trust(chain)
        assert [block.trust for block in chain.blocks] == pytest.approx([0.2, 0.1, 0.0])

    def test_abandoned_fork_is_pruned(self, gossip):
        chain = BlockChain()
        history = [Block("a")] + [Block(name, previous) for previous, name in zip("abcde", "bcdef")]
        for block in history + [Block("x", "a")]:
            chain.add(block)
        assert len(chain.get_ends()) == 2
        gossip.protocol.prune_abandoned_branches(chain)
        assert [block.block_id for block in chain.blocks] == list("abcdef")
        assert chain.branches == []

    def test_recent_fork_is_kept(self, gossip):
        chain = BlockChain()
        for block in (Block("a"), Block("b", "a"), Block("x", "a")):
            chain.add(block)
        gossip.protocol.prune_abandoned_branches(chain)
        assert len(chain.get_ends()) == 2
