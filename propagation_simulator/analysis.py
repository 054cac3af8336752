from __future__ import annotations
from typing import Optional

import matplotlib.pyplot as plt
import pandas as pd

from propagation_simulator.telemetry import Telemetry


def packet_traffic(telemetry: Telemetry) -> pd.DataFrame:
    """Number of packets put on the network per packet kind."""
    df = telemetry.to_dataframe()
    if df.empty or "kind" not in df.columns:
        return pd.DataFrame(columns=["kind", "packets"])
    in_flight = df[df["type"] == "packet-in-flight"]
    return (in_flight.groupby("kind").size()
            .reset_index(name="packets")
            .sort_values("kind", ignore_index=True))


def plot_packet_traffic(telemetry: Telemetry, filename: Optional[str] = "packet_traffic.png"):
    """Bar chart of `packet_traffic`. Saved to `filename` unless it is None."""
    traffic = packet_traffic(telemetry)
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.bar(traffic["kind"], traffic["packets"], color="tab:blue")
    ax.set_xlabel("Packet kind")
    ax.set_ylabel("Packets sent")
    ax.set_title("Network traffic")
    fig.tight_layout()
    if filename:
        fig.savefig(filename)
    return fig
