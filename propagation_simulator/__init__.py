from propagation_simulator.block import Block
from propagation_simulator.blockchain import BlockChain, ChainEntry
from propagation_simulator.consensus import ConsensusProtocol, GossipLongestChainProtocol, ProcessResult
from propagation_simulator.errors import CanonicalizationError, CollaboratorError, SimulationError
from propagation_simulator.event_queue import EventQueue
from propagation_simulator.events import FunctionEvent, NodeEvent, SimulationEvent
from propagation_simulator.node import NodeData, NodeStore, PeerData
from propagation_simulator.packet import AddressPacket, BlockPacket, NewBlockSignal, Packet, PacketKind
from propagation_simulator.random_streams import SeededRandom
from propagation_simulator.settings import Settings
from propagation_simulator.simulator import BlockPropagationSimulator, SimulationContext
from propagation_simulator.telemetry import Telemetry
from propagation_simulator.trust import TrustAggregator

__all__ = [
    "AddressPacket", "Block", "BlockChain", "BlockPacket", "BlockPropagationSimulator",
    "CanonicalizationError", "ChainEntry", "CollaboratorError", "ConsensusProtocol",
    "EventQueue", "FunctionEvent", "GossipLongestChainProtocol", "NewBlockSignal", "NodeData",
    "NodeEvent", "NodeStore", "Packet", "PacketKind", "PeerData", "ProcessResult", "SeededRandom",
    "Settings", "SimulationContext", "SimulationError", "SimulationEvent", "Telemetry",
    "TrustAggregator",
]
