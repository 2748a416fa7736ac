from .models import (
    Decision,
    FinalOffer,
    LineItemRequest,
    NegotiationResult,
    NegotiationStatus,
    Offer,
    OfferSource,
    PriorityWeights,
)
from .orchestrator import NegotiationOrchestrator, NegotiationRequest, run_negotiation
from .scoring import make_decision, score_offers
from .workflow import run_negotiations, run_sourcing_workflow

__all__ = [
    "Decision",
    "FinalOffer",
    "LineItemRequest",
    "NegotiationResult",
    "NegotiationStatus",
    "Offer",
    "OfferSource",
    "PriorityWeights",
    "NegotiationOrchestrator",
    "NegotiationRequest",
    "run_negotiation",
    "make_decision",
    "score_offers",
    "run_negotiations",
    "run_sourcing_workflow",
]
