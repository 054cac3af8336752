from __future__ import annotations
import logging
from collections import Counter
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Set, Tuple, Union

from propagation_simulator.block import Block
from propagation_simulator.errors import CanonicalizationError

BlockKey = Tuple[str, Optional[str]]
BlockRef = Union[Block, str]

DEFAULT_TIDY_ITERATIONS = 10_000


class ChainEntry(NamedTuple):
    """Where a block occurrence sits inside a ledger."""
    chain: 'BlockChain'
    local_index: int
    global_index: int
    block: Block
    chain_indexes: Tuple[int, ...]


def _ref_id(ref: BlockRef) -> str:
    return ref.block_id if isinstance(ref, Block) else ref


# ============================
# LEDGER
# ============================

class BlockChain:
    """A tree of competing block histories.

    Each ledger holds a spine of blocks and any number of branches, which are ledgers
    themselves and all continue from the last block of the spine. A node keeps every
    block it has ever received somewhere in this tree, so forks stay visible until the
    trust pass trims a fully trusted prefix away.
    """

    def __init__(self, blocks: Optional[List[Block]] = None, branches: Optional[List['BlockChain']] = None):
        self.blocks: List[Block] = list(blocks) if blocks else []
        self.branches: List['BlockChain'] = list(branches) if branches else []
        # Only meaningful on the root ledger
        self.trimmed_ids: Set[str] = set()
        self.base_id: Optional[str] = None

    # ----------------------------
    # Queries
    # ----------------------------

    def __iter__(self) -> Iterator[Block]:
        yield from self.blocks
        for branch in self.branches:
            yield from branch

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def is_empty(self) -> bool:
        return not self.blocks and not self.branches

    def _walk(self, parent: Optional['BlockChain'] = None, index: int = -1, depth: int = 0,
              path: Tuple[int, ...] = ()) -> Iterator[Tuple[Optional['BlockChain'], int, 'BlockChain', int, Tuple[int, ...]]]:
        """Yields (parent, index in parent, ledger, depth, branch path) for every ledger, pre-order."""
        yield parent, index, self, depth, path
        child_depth = depth + len(self.blocks)
        for i, branch in enumerate(self.branches):
            yield from branch._walk(self, i, child_depth, path + (i,))

    def entries(self) -> Iterator[ChainEntry]:
        for _, _, chain, depth, path in self._walk():
            for i, block in enumerate(chain.blocks):
                yield ChainEntry(chain, i, depth + i, block, path)

    def has(self, ref: BlockRef) -> bool:
        """Blocks match on content identity, plain ids match any occurrence with that id."""
        if isinstance(ref, Block):
            return any(block.key == ref.key for block in self)
        return any(block.block_id == ref for block in self)

    def find(self, ref: BlockRef) -> Optional[ChainEntry]:
        return next(iter(self.find_all(ref)), None)

    def find_all(self, ref: BlockRef) -> List[ChainEntry]:
        block_id = _ref_id(ref)
        return [entry for entry in self.entries() if entry.block.block_id == block_id]

    def get_ends(self) -> List[Block]:
        """The tip of every competing history."""
        return [entry.block for entry in self.end_entries()]

    def end_entries(self) -> List[ChainEntry]:
        ends = []
        for _, _, chain, depth, path in self._walk():
            if not chain.branches and chain.blocks:
                index = len(chain.blocks) - 1
                ends.append(ChainEntry(chain, index, depth + index, chain.blocks[index], path))
        return ends

    def keys(self) -> Counter:
        """How many times each content key occurs in the tree."""
        return Counter(block.key for block in self)

    def structure(self) -> tuple:
        """Shape of the tree in content keys, ignoring trust and local ids."""
        return (tuple(block.key for block in self.blocks), tuple(branch.structure() for branch in self.branches))

    def successor_keys(self, index: int) -> Set[BlockKey]:
        """Content keys that directly follow the block at `index` of this spine."""
        if index < len(self.blocks) - 1:
            return {self.blocks[index + 1].key}
        return {branch.blocks[0].key for branch in self.branches if branch.blocks}

    def copy(self) -> 'BlockChain':
        """Deep copy. Every block occurrence is cloned, nothing is shared with the original."""
        chain = BlockChain([block.clone() for block in self.blocks], [branch.copy() for branch in self.branches])
        chain.trimmed_ids = set(self.trimmed_ids)
        chain.base_id = self.base_id
        return chain

    # ----------------------------
    # Mutations
    # ----------------------------

    def add(self, block: Block, tidy: bool = True) -> bool:
        """Adds a copy of `block` to the tree. Returns False when the block was already known."""
        if block.block_id in self.trimmed_ids:
            return False
        if block.previous_id is not None and block.previous_id in self.trimmed_ids:
            if block.previous_id != self.base_id:
                logging.debug(f"Ignoring block {block.block_id}, it forks off trimmed history")
                return False
            block = block.rebased()
        if self.has(block):
            return False

        new_block = block.clone()
        previous = self.find(new_block.previous_id) if new_block.previous_id is not None else None
        if previous is None:
            self._add_root(new_block)
        else:
            previous.chain._attach(previous.local_index, BlockChain([new_block]))

        if tidy:
            self.tidy()
        return True

    def _add_root(self, block: Block) -> None:
        """Places a rootless or orphaned block at the top of the tree."""
        if self.is_empty():
            self.blocks.append(block)
            return
        if self.blocks:
            self._split(0)
        self.branches.append(BlockChain([block]))

    def _split(self, index: int) -> None:
        """Moves the spine from `index` onwards, and all current branches, into one branch."""
        tail = BlockChain(self.blocks[index:], self.branches)
        self.blocks = self.blocks[:index]
        self.branches = [tail]

    def _attach(self, index: int, subtree: 'BlockChain') -> None:
        """Attaches `subtree` as a continuation of the block at `index` of this spine."""
        if index < len(self.blocks) - 1:
            self._split(index + 1)
            self.branches.append(subtree)
        elif not self.branches:
            self.blocks.extend(subtree.blocks)
            self.branches = subtree.branches
        else:
            self.branches.append(subtree)

    def _subtree(self, index: int) -> 'BlockChain':
        """Shallow view of everything from the block at `index` onwards."""
        return BlockChain(self.blocks[index:], self.branches)

    def remove_branch(self, chain_indexes: Sequence[int], tidy: bool = True) -> 'BlockChain':
        """Removes the branch at the given path of branch indexes and returns it."""
        if not chain_indexes:
            raise ValueError("The root ledger is not a branch")
        parent = self
        for index in chain_indexes[:-1]:
            parent = parent.branches[index]
        removed = parent.branches.pop(chain_indexes[-1])
        if tidy:
            self.tidy()
        return removed

    def trim_base(self, trusted_blocks: Sequence[Block], tidy: bool = True) -> int:
        """Permanently removes a fully trusted prefix from the root of the tree.

        The blocks directly following the prefix become the new base and lose their
        previous id. When a spine runs out before the prefix does, trimming continues
        into the branch holding the next trusted block; the other branches fork off
        history that is now trimmed and are dropped.

        :return: The number of blocks removed from this ledger.
        """
        if not trusted_blocks:
            return 0

        removed = 0
        for target in trusted_blocks:
            if not self.blocks:
                match = next((branch for branch in self.branches if branch.blocks and branch.blocks[0].key == target.key), None)
                if match is None:
                    break
                self.blocks, self.branches = match.blocks, match.branches
            if self.blocks[0].key != target.key:
                break
            self.blocks.pop(0)
            removed += 1

        self.trimmed_ids.update(block.block_id for block in trusted_blocks)
        self.base_id = trusted_blocks[-1].block_id
        self._rebase_roots()
        if tidy:
            self.tidy()
        return removed

    def _rebase_roots(self) -> None:
        heads = [self] if self.blocks else self.branches
        for chain in heads:
            if chain.blocks and chain.blocks[0].previous_id == self.base_id:
                chain.blocks[0] = chain.blocks[0].rebased()

    # ----------------------------
    # Canonicalization
    # ----------------------------

    def tidy(self, max_iterations: int = DEFAULT_TIDY_ITERATIONS) -> 'BlockChain':
        """Restores the canonical shape of the tree.

        Applies the first rule that changes something, then starts over, until no rule
        fires. Rules in priority order: remove empty branches, collapse single branches,
        graft missing successors, strip redundant orphan prefixes, merge sibling
        branches that start the same way.
        """
        rules = (
            self._remove_empty_branch,
            self._collapse_single_branch,
            self._graft_missing_successor,
            self._strip_orphan_prefix,
            self._merge_sibling_prefixes,
        )
        for _ in range(max_iterations):
            if not any(rule() for rule in rules):
                return self
        raise CanonicalizationError(f"Ledger did not settle after {max_iterations} tidy passes")

    def _remove_empty_branch(self) -> bool:
        for parent, index, chain, _, _ in self._walk():
            if parent is not None and not chain.blocks:
                parent.branches[index:index + 1] = chain.branches
                return True
        return False

    def _collapse_single_branch(self) -> bool:
        for _, _, chain, _, _ in self._walk():
            if len(chain.branches) == 1:
                only = chain.branches[0]
                chain.blocks.extend(only.blocks)
                chain.branches = only.branches
                return True
        return False

    def _graft_missing_successor(self) -> bool:
        # Every occurrence of a block must be followed by every block known to build on it.
        # Blocks reachable through several paths are copied into each of them.
        entries = list(self.entries())
        successors: Dict[str, Dict[BlockKey, ChainEntry]] = {}
        for entry in entries:
            if entry.block.previous_id is not None:
                successors.setdefault(entry.block.previous_id, {}).setdefault(entry.block.key, entry)

        for entry in entries:
            known = successors.get(entry.block.block_id)
            if not known:
                continue
            present = entry.chain.successor_keys(entry.local_index)
            for key, source in known.items():
                if key not in present:
                    graft = source.chain._subtree(source.local_index).copy()
                    entry.chain._attach(entry.local_index, graft)
                    return True
        return False

    def _strip_orphan_prefix(self) -> bool:
        counts = None
        for parent, _, chain, _, _ in self._walk():
            if parent is None or not chain.blocks:
                continue
            anchor = parent.blocks[-1].block_id if parent.blocks else None
            if chain.blocks[0].previous_id == anchor:
                continue
            if counts is None:
                counts = self.keys()
            redundant = 0
            for block in chain.blocks:
                if counts[block.key] < 2:
                    break
                redundant += 1
            if redundant:
                del chain.blocks[:redundant]
                return True
        return False

    def _merge_sibling_prefixes(self) -> bool:
        for _, _, chain, _, _ in self._walk():
            for i, first in enumerate(chain.branches):
                for j in range(i + 1, len(chain.branches)):
                    second = chain.branches[j]
                    if first.blocks and second.blocks and first.blocks[0].key == second.blocks[0].key:
                        chain.branches[i] = self._merge(first, second)
                        del chain.branches[j]
                        return True
        return False

    @staticmethod
    def _merge(first: 'BlockChain', second: 'BlockChain') -> 'BlockChain':
        shared = 0
        while (shared < min(len(first.blocks), len(second.blocks))
               and first.blocks[shared].key == second.blocks[shared].key):
            shared += 1
        children = []
        for side in (first, second):
            rest = side.blocks[shared:]
            if rest:
                children.append(BlockChain(rest, side.branches))
            else:
                children.extend(side.branches)
        return BlockChain(first.blocks[:shared], children)

    def __repr__(self):
        spine = " -> ".join(block.block_id for block in self.blocks)
        if not self.branches:
            return f"[{spine}]"
        return f"[{spine}]{{{' | '.join(repr(branch) for branch in self.branches)}}}"
