from dataclasses import dataclass, fields
from typing import Any, Dict

from propagation_simulator.blockchain import DEFAULT_TIDY_ITERATIONS

# Keys of the nested settings layout used by the controls UI, mapped to field names
NESTED_KEYS = {
    ("network", "nodes"): "nodes",
    ("network", "delay"): "propagation_delay",
    ("nodes", "delay"): "node_delay",
    ("nodes", "startNodes"): "start_nodes",
    ("nodes", "nodesToAdd"): "nodes_to_add",
    ("block", "delay"): "block_delay",
}
ALIASES = {
    "networkBoxRatio": "box_ratio",
    "aspectRatio": "box_ratio",
}


@dataclass
class Settings:
    """Parameters of one simulation run. Times are in simulated milliseconds.

    :param nodes: Network size, admission stops once it is reached.
    :param propagation_delay: Time a packet needs to cross one unit of distance.
    :param node_delay: Time between two rounds of node admission.
    :param start_nodes: Nodes created in the first round; they know each other.
    :param nodes_to_add: Nodes created in every later round.
    :param block_delay: Time between two block discoveries.
    :param first_block_at: When the first block is discovered.
    :param seed: Seed of every random stream.
    :param box_ratio: Width of the network box relative to its height.
    :param max_drain_seconds: Wall-clock time the event queue may run before yielding to the host.
    :param tidy_max_iterations: Ceiling on ledger canonicalization passes.
    """
    nodes: int = 20
    propagation_delay: float = 1000
    node_delay: float = 1000
    start_nodes: int = 5
    nodes_to_add: int = 5
    block_delay: float = 1000
    first_block_at: float = 5000
    seed: int = 1
    box_ratio: float = 1.0
    max_drain_seconds: float = 1.5
    tidy_max_iterations: int = DEFAULT_TIDY_ITERATIONS

    def __post_init__(self):
        for name in ("nodes", "start_nodes", "nodes_to_add", "tidy_max_iterations"):
            if int(getattr(self, name)) < 1:
                raise ValueError(f"{name} must be at least 1")
        for name in ("propagation_delay", "node_delay", "block_delay", "first_block_at", "max_drain_seconds"):
            if float(getattr(self, name)) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.box_ratio <= 0:
            raise ValueError("box_ratio must be positive")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Settings':
        """Reads flat field names as well as the nested controls layout, e.g. {"network": {"nodes": 30}}."""
        names = {field.name for field in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(value, dict):
                for inner_key, inner_value in value.items():
                    name = NESTED_KEYS.get((key, inner_key))
                    if name is not None:
                        values[name] = inner_value
            elif key in names:
                values[key] = value
            elif key in ALIASES:
                values[ALIASES[key]] = value
        for name in ("nodes", "start_nodes", "nodes_to_add", "seed", "tidy_max_iterations"):
            if name in values:
                values[name] = int(values[name])
        for name in ("propagation_delay", "node_delay", "block_delay", "first_block_at", "box_ratio", "max_drain_seconds"):
            if name in values:
                values[name] = float(values[name])
        return cls(**values)
