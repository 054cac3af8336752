from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Tuple, TYPE_CHECKING

from propagation_simulator.block import Block
from propagation_simulator.network import distance, propagation_delay

if TYPE_CHECKING:
    from propagation_simulator.simulator import SimulationContext


class PacketKind(Enum):
    ADDRESS = "AddressPacket"
    BLOCK = "BlockPacket"
    NEW_BLOCK = "NewBlockSignal"


# ============================
# PACKETS
# ============================

@dataclass(frozen=True)
class Packet:
    """Data sent from one node to another. The delay is fixed when the packet is created."""
    to: int
    sender: int
    distance: float = 0.0
    delay: float = 0.0

    kind: ClassVar[PacketKind]

    def __post_init__(self):
        if type(self) is Packet:
            raise TypeError("Packet is abstract, send an AddressPacket, BlockPacket or NewBlockSignal")

    @classmethod
    def create(cls, context: 'SimulationContext', to: int, sender: Optional[int] = None, **payload) -> 'Packet':
        """Builds a packet between two known nodes, computing distance and delay from their positions."""
        if cls is Packet:
            raise TypeError("Packet is abstract, send an AddressPacket, BlockPacket or NewBlockSignal")
        if sender is None:
            sender = to
        length = distance(context.nodes.get(sender).position, context.nodes.get(to).position)
        return cls(to=to, sender=sender, distance=length, delay=propagation_delay(length, context.settings), **payload)

    @property
    def is_internal(self) -> bool:
        """Self-addressed packets are signals generated inside the node, not network traffic."""
        return self.to == self.sender

    @property
    def summary(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class AddressPacket(Packet):
    addresses: Tuple[int, ...] = ()

    kind: ClassVar[PacketKind] = PacketKind.ADDRESS

    def __post_init__(self):
        object.__setattr__(self, "addresses", tuple(self.addresses))

    @property
    def summary(self) -> str:
        return f"{len(self.addresses)} address{'es' if len(self.addresses) != 1 else ''}"


@dataclass(frozen=True)
class BlockPacket(Packet):
    block: Optional[Block] = None

    kind: ClassVar[PacketKind] = PacketKind.BLOCK

    def __post_init__(self):
        if self.block is None:
            raise ValueError("A block packet needs a block")
        # Later changes to the sender's ledger must not travel with the packet
        object.__setattr__(self, "block", self.block.clone())

    @property
    def summary(self) -> str:
        return f"block {self.block.block_id}"


@dataclass(frozen=True)
class NewBlockSignal(Packet):
    kind: ClassVar[PacketKind] = PacketKind.NEW_BLOCK

    @property
    def summary(self) -> str:
        return "a new block signal"
