"""
Core data models for the procurement negotiation simulator.
"""

from typing import Dict, List, Optional, Any
from dataclasses import dataclass, asdict
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class OfferSource(str, Enum):
    """Side of the table that recorded an offer."""

    BRAND = "brand"
    SUPPLIER = "supplier"


class NegotiationStatus(str, Enum):
    """Lifecycle of one negotiation; ``active`` is the only non-terminal state."""

    ACTIVE = "active"
    COMPLETED = "completed"
    IMPASSE = "impasse"

    @property
    def is_terminal(self) -> bool:
        return self is not NegotiationStatus.ACTIVE


class QualityImpact(str, Enum):
    """Expected quality consequence of a material substitution."""

    NONE = "none"
    MINOR = "minor"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class WireModel(BaseModel):
    """Base for models exchanged with collaborators.

    Field names are snake_case in Python; the camelCase names used on the
    wire (``unitPrice``, ``leadTimeDays``...) are accepted as aliases.
    """

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class Offer(WireModel):
    """Concrete commercial terms proposed by one side. Immutable."""

    model_config = ConfigDict(frozen=True)

    unit_price: float = Field(..., gt=0)
    lead_time_days: int = Field(..., gt=0)
    payment_terms: str = Field(..., min_length=1)
    notes: Optional[str] = None


@dataclass(frozen=True)
class OfferHistoryEntry:
    """One append-only ledger row."""

    round_num: int
    timestamp: float
    source: OfferSource
    offer: Offer
    action_ref: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["source"] = self.source.value
        data["offer"] = self.offer.model_dump()
        return data


class LedgerStats(BaseModel):
    """Aggregate view over an offer ledger."""

    total_rounds: int = 0
    total_offers: int = 0
    price_min: Optional[float] = None
    price_max: Optional[float] = None
    average_price: Optional[float] = None
    price_improvement_percent: float = 0.0
    final_offer: Optional[Offer] = None


class ImpasseConditions(BaseModel):
    """The five independently evaluated impasse signals."""

    max_rounds_reached: bool = False
    explicit_rejection: bool = False
    no_progress_in_rounds: bool = False
    price_gap_too_large: bool = False
    lead_time_unacceptable: bool = False


class ImpasseResult(BaseModel):
    """Outcome of an impasse evaluation. Derived, never persisted."""

    is_impasse: bool
    conditions: ImpasseConditions
    primary_reason: Optional[str] = None
    details: str = ""


class PriorityWeights(WireModel):
    """Relative importance of the four scoring criteria, summing to 100."""

    quality: float = Field(25.0, ge=0, le=100)
    cost: float = Field(25.0, ge=0, le=100)
    lead_time: float = Field(25.0, ge=0, le=100)
    payment_terms: float = Field(25.0, ge=0, le=100)

    @model_validator(mode="after")
    def _validate_total(self):
        total = self.quality + self.cost + self.lead_time + self.payment_terms
        if abs(total - 100.0) > 0.01:
            raise ValueError(f"Priority weights must sum to 100, got {total:g}")
        return self

    def as_dict(self) -> Dict[str, float]:
        return {
            "quality": self.quality,
            "cost": self.cost,
            "lead_time": self.lead_time,
            "payment_terms": self.payment_terms,
        }


class LineItemRequest(WireModel):
    """A requested product and quantity."""

    product_id: str
    quantity: int


class MaterialSubstitution(BaseModel):
    """A cheaper material the supplier may propose for one product."""

    original: str
    suggested: str
    savings_percent: float
    description: str = ""


class LineOffer(BaseModel):
    """Final per-product pricing line."""

    product_id: str
    product_name: str
    quantity: int
    unit_price: float
    line_total: float
    material_substitution: Optional[MaterialSubstitution] = None


class FinalOffer(BaseModel):
    """Agreed (or auto-resolved) terms with a per-line breakdown."""

    products: List[LineOffer] = Field(default_factory=list)
    subtotal: float
    volume_discount: float = 0.0
    volume_discount_percent: float = 0.0
    unit_price: float
    lead_time_days: int
    payment_terms: str

    def as_offer(self) -> Offer:
        return Offer(
            unit_price=self.unit_price,
            lead_time_days=self.lead_time_days,
            payment_terms=self.payment_terms,
        )


class MessageRecord(BaseModel):
    """A message persisted through ``on_message``."""

    sender: str
    content: str
    timestamp: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class NegotiationResult(BaseModel):
    """Snapshot of a finished negotiation handed to the scoring engine."""

    negotiation_id: str
    counterparty_id: str
    counterparty_name: str
    quality_rating: float
    status: NegotiationStatus
    final_offer: Optional[FinalOffer] = None
    round_count: int
    max_rounds: int
    messages: List[MessageRecord] = Field(default_factory=list)
    history: List[OfferHistoryEntry] = Field(default_factory=list)
    stats: LedgerStats = Field(default_factory=LedgerStats)
    substitution_summary: str = ""
    substitution_savings_percent: float = 0.0
    substitution_quality_impact: QualityImpact = QualityImpact.NONE
    substitution_lead_time_change: int = 0
    impasse: Optional[ImpasseResult] = None
    impasse_reason: Optional[str] = None

    def summary(self) -> str:
        """One-line human-readable synopsis."""
        if self.status == NegotiationStatus.COMPLETED and self.final_offer is not None:
            return (
                f"✅ {self.counterparty_name}: agreed ${self.final_offer.unit_price:.2f}/unit, "
                f"{self.final_offer.lead_time_days} days, {self.final_offer.payment_terms} "
                f"after {self.round_count} rounds"
            )
        return (
            f"❌ {self.counterparty_name}: {self.status.value} after {self.round_count} rounds. "
            f"Reason: {self.impasse_reason or 'Unknown'}"
        )


class ScoreBreakdown(BaseModel):
    """Per-criterion scores in [0, 100] and the weighted total."""

    quality_score: float
    cost_score: float
    lead_time_score: float
    payment_terms_score: float
    total_score: float


class RankingEntry(BaseModel):
    counterparty_id: str
    name: str
    total_score: float
    rank: int


class Decision(BaseModel):
    """Final ranked selection across all counterparties."""

    selected_counterparty_id: str
    reasoning: str
    scores: Dict[str, ScoreBreakdown]
    ranking: List[RankingEntry] = Field(default_factory=list)
    summary: str = ""
    used_fallback_reasoning: bool = False
