import os

os.environ.setdefault("MPLBACKEND", "Agg")

import pytest

from propagation_simulator.block import Block
from propagation_simulator.consensus import ConsensusProtocol, ProcessResult
from propagation_simulator.settings import Settings
from propagation_simulator.simulator import SimulationContext


class RecordingProtocol(ConsensusProtocol):
    """Accepts every packet without sending anything and remembers when it arrived."""

    def __init__(self, context):
        super().__init__(context)
        self.seen = []

    def process(self, packet, node):
        self.seen.append((self.context.now, packet))
        return ProcessResult(node, [])


# ===== FIXTURES =====

@pytest.fixture
def settings():
    return Settings(nodes=8, start_nodes=3, nodes_to_add=2, propagation_delay=100,
                    node_delay=100, block_delay=500, first_block_at=500, seed=7)


@pytest.fixture
def context(settings):
    """A running context whose nodes only record what they receive."""
    context = SimulationContext(settings, RecordingProtocol)
    context.running = True
    return context


@pytest.fixture
def blocks():
    """A small history a <- b <- c <- d <- e, plus x forking off a."""
    a = Block("a")
    b = Block("b", "a")
    c = Block("c", "b")
    d = Block("d", "c")
    e = Block("e", "d")
    x = Block("x", "a")
    return {"a": a, "b": b, "c": c, "d": d, "e": e, "x": x}
