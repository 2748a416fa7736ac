"""
Boundary types for the external collaborators the orchestrator depends on:
message generators for both sides, a reasoning generator for the decision,
and the persistence/guidance callbacks.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional, Protocol

from pydantic import BaseModel

from .actions import CollaboratorResponse, RawAction
from .catalog import CounterpartyProfile, RoundQuote, VolumeDiscount
from .guidance import FormattedGuidance, UserIntervention
from .models import (
    FinalOffer,
    LineOffer,
    MessageRecord,
    NegotiationStatus,
    Offer,
    OfferHistoryEntry,
    OfferSource,
    PriorityWeights,
)
from .substitutions import SubstitutionRecord

if TYPE_CHECKING:
    from .scoring import DecisionContext

__all__ = [
    "CollaboratorResponse",
    "RawAction",
    "RoundContext",
    "MessageGenerator",
    "ReasoningGenerator",
    "OfferNotice",
    "NegotiationCallbacks",
    "no_op_callbacks",
    "fallback_brand_message",
    "fallback_supplier_message",
]


@dataclass
class RoundContext:
    """Everything a message generator sees for one turn."""

    negotiation_id: str
    round_num: int
    max_rounds: int
    side: OfferSource
    counterparty: CounterpartyProfile
    line_items: List[LineOffer]
    priorities: PriorityWeights
    reference_quote: RoundQuote
    volume_discount: VolumeDiscount
    product_summary: str = ""
    user_notes: str = ""
    offer_history: List[OfferHistoryEntry] = field(default_factory=list)
    prior_messages: List[MessageRecord] = field(default_factory=list)
    guidance: Optional[FormattedGuidance] = None
    guidance_text: str = ""
    other_side_message: Optional[str] = None
    substitutions: List[SubstitutionRecord] = field(default_factory=list)

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.line_items)

    @property
    def is_final_round(self) -> bool:
        return self.round_num >= self.max_rounds - 1

    def latest_offer(self, source: OfferSource) -> Optional[Offer]:
        for entry in reversed(self.offer_history):
            if entry.source == source:
                return entry.offer
        return None


class MessageGenerator(Protocol):
    """Produces one side's message (and structured actions) for a turn."""

    async def generate(self, context: RoundContext) -> CollaboratorResponse:
        ...


class ReasoningGenerator(Protocol):
    """Writes the prose explanation of a decision."""

    async def explain(self, context: "DecisionContext") -> str:
        ...


class OfferNotice(BaseModel):
    counterparty_id: str
    avg_price: float
    lead_time: int
    payment_terms: str


OnMessage = Callable[[str, MessageRecord], Awaitable[None]]
OnStatusChange = Callable[[str, NegotiationStatus, int, Optional[FinalOffer]], Awaitable[None]]
OnOfferReceived = Callable[[str, OfferNotice], Awaitable[None]]
GetUserInterventions = Callable[[str, float], Awaitable[List[UserIntervention]]]


@dataclass
class NegotiationCallbacks:
    """Persistence and guidance hooks; every hook may raise."""

    on_message: OnMessage
    on_status_change: OnStatusChange
    on_offer_received: Optional[OnOfferReceived] = None
    get_user_interventions: Optional[GetUserInterventions] = None


def no_op_callbacks() -> NegotiationCallbacks:
    async def on_message(negotiation_id: str, message: MessageRecord) -> None:
        return None

    async def on_status_change(negotiation_id, status, round_count, final_offer=None) -> None:
        return None

    return NegotiationCallbacks(on_message=on_message, on_status_change=on_status_change)


def fallback_brand_message(context: RoundContext) -> CollaboratorResponse:
    summary = context.product_summary or f"{len(context.line_items)} products"
    return CollaboratorResponse(
        text=(
            f"We are interested in sourcing {summary}. "
            f"Please provide your best offer for {context.total_quantity:,} units."
        )
    )


def fallback_supplier_message(context: RoundContext) -> CollaboratorResponse:
    last = context.latest_offer(OfferSource.SUPPLIER)
    price = last.unit_price if last else context.reference_quote.average_unit_price
    lead_time = last.lead_time_days if last else context.counterparty.lead_time_days
    terms = last.payment_terms if last else context.counterparty.payment_terms
    return CollaboratorResponse(
        text=(
            f"Thank you for your inquiry. We at {context.counterparty.name} can offer "
            f"${price:.2f}/unit with {lead_time}-day delivery and {terms} payment terms."
        )
    )
