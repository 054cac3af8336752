from __future__ import annotations
import itertools
import logging
from typing import Any, Dict, List, Tuple, TYPE_CHECKING

from propagation_simulator.block import Block
from propagation_simulator.blockchain import BlockChain, BlockKey

if TYPE_CHECKING:
    from propagation_simulator.simulator import SimulationContext

MIN_BLOCK_SIZE = 2
MAX_BLOCK_SIZE = 20


class TrustAggregator:
    """Federates every node's ledger after each delivery and shares trust between them.

    Each pass builds a fresh federated ledger holding every block any node knows,
    averages the trust nodes assign to each block, lets every node catch up to that
    average, and trims the fully trusted start of the history from all ledgers.
    """

    def __init__(self, context: 'SimulationContext'):
        self.context = context
        self.federated: BlockChain = BlockChain()
        self._last_layout: Dict[str, Dict[str, Any]] = {}

    def aggregate(self) -> BlockChain:
        nodes = self.context.nodes.values()
        federated = BlockChain()
        trusts: Dict[BlockKey, List[float]] = {}
        for node in nodes:
            # One vote per node, even when its ledger holds the block on several paths
            held: Dict[BlockKey, Block] = {}
            for block in node.blockchain:
                if block.key not in held or block.trust > held[block.key].trust:
                    held[block.key] = block
            for key, block in held.items():
                if key not in trusts:
                    federated.add(block, tidy=False)
                trusts.setdefault(key, []).append(block.trust)
        federated.tidy(self.context.settings.tidy_max_iterations)

        averages = {key: sum(values) / len(values) for key, values in trusts.items()}
        for block in federated:
            block.trust = averages[block.key]
        for node in nodes:
            for block in node.blockchain:
                # Trust only moves up within a pass
                if averages[block.key] > block.trust:
                    block.trust = averages[block.key]

        trusted = self.trusted_prefix(federated)
        if trusted:
            ids = ", ".join(block.block_id for block in trusted)
            self.context.telemetry.log(f"Trim fully trusted block{'s' if len(trusted) > 1 else ''} {ids}")
            for node in nodes:
                node.blockchain.trim_base(trusted)
            federated.trim_base(trusted)

        self._emit_chain_diff(federated)
        self.federated = federated
        return federated

    @staticmethod
    def trusted_prefix(federated: BlockChain) -> List[Block]:
        """Leading fully trusted blocks of the root spine.

        The last block of a chain that nothing builds on yet is kept, new blocks still
        need something to build on.
        """
        trusted = list(itertools.takewhile(lambda block: block.fully_trusted, federated.blocks))
        if len(trusted) == len(federated.blocks) and not federated.branches:
            trusted = trusted[:-1]
        return trusted

    # ----------------------------
    # Chain diff telemetry
    # ----------------------------

    def _layout(self, chain: BlockChain, layout: Dict[str, Dict[str, Any]], heights: List[float],
                top: float = 0.0, height: float = 100.0, left: int = 0, path: Tuple[int, ...] = ()) -> None:
        """Positions every block of the federated ledger; branches split the height of their parent."""
        heights.append(height)
        for block in chain.blocks:
            key = f"{block.block_id}{block.previous_id or ''}{''.join(f'/{i}' for i in path)}"
            layout[key] = {"id": block.block_id, "trust": block.trust, "top": top + height / 2, "left": left}
            left += 1
        if chain.branches:
            branch_height = height / len(chain.branches)
            for i, branch in enumerate(chain.branches):
                self._layout(branch, layout, heights, top + i * branch_height, branch_height, left, path + (i,))

    def _emit_chain_diff(self, federated: BlockChain) -> None:
        layout: Dict[str, Dict[str, Any]] = {}
        heights: List[float] = []
        self._layout(federated, layout, heights)
        block_size = max(min(*heights, MAX_BLOCK_SIZE), MIN_BLOCK_SIZE)
        for position in layout.values():
            position["left"] = position["left"] * block_size + block_size

        changes = []
        for key in list(layout) + [key for key in self._last_layout if key not in layout]:
            old, new = self._last_layout.get(key), layout.get(key)
            if new is None:
                changes.append({"action": "remove", "key": key})
            elif old is None:
                changes.append({"action": "add", "key": key, **new})
            else:
                updates = {name: new[name] for name in ("trust", "top", "left") if new[name] != old[name]}
                if updates:
                    changes.append({"action": "update", "key": key, **updates})

        if changes:
            logging.debug(f"Time {self.context.now:.2f}: federated ledger changed in {len(changes)} places")
            self.context.telemetry.emit("chain-diff", block_size=block_size, events=changes)
        self._last_layout = layout
