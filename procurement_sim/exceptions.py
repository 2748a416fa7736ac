"""
Exception hierarchy for the procurement negotiation simulator.
"""


class NegotiationError(Exception):
    """Base class for every error raised by the simulator."""


class GenerationError(NegotiationError):
    """A message-generation collaborator failed to produce a response."""


class PersistenceError(NegotiationError):
    """A persistence callback raised while recording negotiation progress."""

    def __init__(self, callback: str, negotiation_id: str, message: str = ""):
        self.callback = callback
        self.negotiation_id = negotiation_id
        detail = f": {message}" if message else ""
        super().__init__(f"{callback} failed for negotiation {negotiation_id}{detail}")


class InvalidTransitionError(NegotiationError):
    """A terminal negotiation or decided substitution was mutated."""


class CatalogError(NegotiationError):
    """Scenario or catalog input cannot be turned into a negotiation."""
