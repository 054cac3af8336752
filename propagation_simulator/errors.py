from typing import Optional


class SimulationError(Exception):
    """Base class for faults that abort a simulation run."""


class CollaboratorError(SimulationError):
    """The consensus protocol failed while processing a packet."""

    def __init__(self, message: str, address: Optional[int] = None, packet_summary: Optional[str] = None):
        # simpy re-raises process failures as type(error)(*error.args), keep the context in args
        super().__init__(message, address, packet_summary)

    @property
    def address(self) -> Optional[int]:
        return self.args[1]

    @property
    def packet_summary(self) -> Optional[str]:
        return self.args[2]

    def __str__(self):
        return self.args[0]


class CanonicalizationError(SimulationError):
    """A ledger did not reach a canonical shape within the iteration ceiling."""
