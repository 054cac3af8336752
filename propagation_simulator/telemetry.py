from __future__ import annotations
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import pandas as pd
import simpy

TelemetryEvent = Dict[str, Any]


class Telemetry:
    """Ordered, timestamped draw and log events for whoever visualizes the run.

    Delivery to subscribers is best effort. A subscriber that raises is logged and
    skipped, the simulation itself never depends on it.
    """

    def __init__(self, env: Optional[simpy.Environment] = None):
        self.env = env
        self.events: List[TelemetryEvent] = []
        self.subscribers: List[Callable[[TelemetryEvent], Any]] = []

    @property
    def now(self) -> float:
        return self.env.now if self.env is not None else 0

    def subscribe(self, callback: Callable[[TelemetryEvent], Any]) -> None:
        self.subscribers.append(callback)

    def emit(self, event_type: str, **data) -> TelemetryEvent:
        event: TelemetryEvent = {"timestamp": self.now, "active": True, "type": event_type}
        event.update(data)
        self.events.append(event)
        for subscriber in self.subscribers:
            try:
                subscriber(event)
            except Exception:
                logging.warning(f"Telemetry consumer {subscriber!r} failed on a {event_type} event", exc_info=True)
        return event

    def log(self, message: str) -> TelemetryEvent:
        logging.info(f"Time {self.now:.2f}: {message}")
        return self.emit("log", message=message)

    def error(self, message: str, error: BaseException) -> TelemetryEvent:
        logging.error(f"Time {self.now:.2f}: {message}: {error!r}")
        return self.emit("error", message=message, error=repr(error))

    def of_type(self, event_type: str) -> List[TelemetryEvent]:
        return [event for event in self.events if event["type"] == event_type]

    def save(self, filename: str = "simulation_events.json") -> None:
        with open(filename, "w") as f:
            json.dump(self.events, f, indent=2, default=str)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per event, in emission order."""
        if not self.events:
            return pd.DataFrame(columns=["timestamp", "active", "type"])
        return pd.DataFrame.from_records(self.events)
