from __future__ import annotations
import itertools
from typing import Optional, Tuple, TYPE_CHECKING

if TYPE_CHECKING:
    from propagation_simulator.random_streams import SeededRandom

# Tree-local ids. The same content block may sit in several branches of one ledger,
# so every occurrence gets its own id.
local_id_counter = itertools.count(1)


class Block:
    """A block identified by its content id and the id of the block it builds on."""

    def __init__(self, block_id: str, previous_id: Optional[str] = None, trust: float = 0.0):
        self._block_id: str = block_id
        self._previous_id: Optional[str] = previous_id
        self._trust: float = 0.0
        self.trust = trust
        self.local_id: int = next(local_id_counter)

    @classmethod
    def create(cls, random: 'SeededRandom', previous_id: Optional[str] = None) -> 'Block':
        """Creates a brand new block with a random color as its id."""
        return cls(random.random_color(), previous_id)

    @property
    def block_id(self) -> str:
        return self._block_id

    @property
    def previous_id(self) -> Optional[str]:
        return self._previous_id

    @property
    def key(self) -> Tuple[str, Optional[str]]:
        """Content identity of the block."""
        return (self._block_id, self._previous_id)

    @property
    def trust(self) -> float:
        return self._trust

    @trust.setter
    def trust(self, value: float) -> None:
        self._trust = min(1.0, max(0.0, float(value)))

    @property
    def fully_trusted(self) -> bool:
        return self._trust >= 1.0

    def clone(self) -> 'Block':
        """Copies the block content and trust into a new occurrence with its own local id."""
        return Block(self._block_id, self._previous_id, self._trust)

    def rebased(self) -> 'Block':
        """Clone of this block that no longer points at a previous block."""
        return Block(self._block_id, None, self._trust)

    def __repr__(self):
        return f"Block(id={self._block_id}, previous={self._previous_id}, trust={self._trust:.2f}, local={self.local_id})"
