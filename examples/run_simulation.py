import sys
import os

# Get the parent directory of the package
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# Append the parent directory to sys.path
sys.path.append(parent_dir)

from propagation_simulator.analysis import plot_packet_traffic
from propagation_simulator.consensus import GossipLongestChainProtocol
from propagation_simulator.logging_config import configure_logging
from propagation_simulator.settings import Settings
from propagation_simulator.simulator import BlockPropagationSimulator

if __name__ == "__main__":
    configure_logging()
    sim = BlockPropagationSimulator(
        protocol_class=GossipLongestChainProtocol,
        settings=Settings(
            nodes=20,
            propagation_delay=1000,
            node_delay=1000,
            block_delay=1000,
            seed=3554,
        ),
    )

    print("🚀 Starting Block Propagation Simulation...")
    context = sim.start()
    sim.run(duration=30_000)  # 30 simulated seconds
    context.telemetry.save("simulation_events.json")
    plot_packet_traffic(context.telemetry, "packet_traffic.png")
