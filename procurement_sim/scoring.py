"""
Multi-criteria scoring, ranking and decision assembly.

Pure functions over finished negotiation snapshots: nothing here mutates a
negotiation. Only the prose explanation is delegated to an external
reasoning generator; a templated explanation is built from the same
structured context whenever that collaborator is absent or fails.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from pydantic import BaseModel

from .collaborators import ReasoningGenerator
from .exceptions import NegotiationError
from .models import (
    Decision,
    NegotiationResult,
    NegotiationStatus,
    PriorityWeights,
    RankingEntry,
    ScoreBreakdown,
)

logger = logging.getLogger(__name__)


# ===== BENCHMARKS =====

QUALITY_WORST, QUALITY_BEST = 3.0, 5.0
LEAD_TIME_BEST, LEAD_TIME_WORST = 10, 60

PAYMENT_TERMS_SCORES: Dict[str, int] = {
    "33/33/33": 100,
    "30/70": 60,
    "50/50": 80,
    "30/30/40": 90,
    "100": 0,
}

_LEADING_INT = re.compile(r"\s*(\d+)")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


# ===== CRITERION SCORES =====

def quality_score(rating: float) -> int:
    normalized = (rating - QUALITY_WORST) / (QUALITY_BEST - QUALITY_WORST)
    return _round_half_up(_clamp(normalized * 100))


def cost_score(unit_price: float, all_prices: Sequence[float]) -> int:
    """Relative price score: cheapest offer 100, dearest 0."""
    low, high = min(all_prices), max(all_prices)
    if high == low:
        return 100
    return _round_half_up(_clamp((high - unit_price) / (high - low) * 100))


def lead_time_score(lead_time_days: int) -> int:
    normalized = (LEAD_TIME_WORST - lead_time_days) / (LEAD_TIME_WORST - LEAD_TIME_BEST)
    return _round_half_up(_clamp(normalized * 100))


def payment_terms_score(terms: str) -> int:
    """Known splits by table, otherwise 100 minus the upfront share."""
    if terms in PAYMENT_TERMS_SCORES:
        return PAYMENT_TERMS_SCORES[terms]
    parts = [_LEADING_INT.match(part) for part in terms.split("/")]
    if not parts or any(match is None for match in parts):
        return 50
    upfront = int(parts[0].group(1))
    return _round_half_up(_clamp(100 - upfront))


def weighted_total(
    quality: float, cost: float, lead_time: float, payment_terms: float, priorities: PriorityWeights
) -> float:
    total = (
        quality * priorities.quality
        + cost * priorities.cost
        + lead_time * priorities.lead_time
        + payment_terms * priorities.payment_terms
    ) / 100
    return _round_half_up(total * 100) / 100


# ===== SCORING =====

class CounterpartyOffer(BaseModel):
    """Final terms of one counterparty as seen by the scoring engine."""

    counterparty_id: str
    name: str
    quality_rating: float
    unit_price: float
    lead_time_days: int
    payment_terms: str
    status: NegotiationStatus = NegotiationStatus.COMPLETED
    round_count: int = 0

    @classmethod
    def from_result(cls, result: NegotiationResult) -> Optional["CounterpartyOffer"]:
        if result.final_offer is None:
            return None
        return cls(
            counterparty_id=result.counterparty_id,
            name=result.counterparty_name,
            quality_rating=result.quality_rating,
            unit_price=result.final_offer.unit_price,
            lead_time_days=result.final_offer.lead_time_days,
            payment_terms=result.final_offer.payment_terms,
            status=result.status,
            round_count=result.round_count,
        )


@dataclass
class ScoringResult:
    scores: Dict[str, ScoreBreakdown]
    ranking: List[RankingEntry]

    @property
    def winner(self) -> RankingEntry:
        return self.ranking[0]


def score_offers(offers: Sequence[CounterpartyOffer], priorities: PriorityWeights) -> ScoringResult:
    """Score and rank offers. Ties keep input order.

    Raises:
        ValueError: If ``offers`` is empty.
    """
    if not offers:
        raise ValueError("At least one offer is required for scoring")

    all_prices = [offer.unit_price for offer in offers]
    scores: Dict[str, ScoreBreakdown] = {}
    for offer in offers:
        q = quality_score(offer.quality_rating)
        c = cost_score(offer.unit_price, all_prices)
        lt = lead_time_score(offer.lead_time_days)
        pt = payment_terms_score(offer.payment_terms)
        scores[offer.counterparty_id] = ScoreBreakdown(
            quality_score=q,
            cost_score=c,
            lead_time_score=lt,
            payment_terms_score=pt,
            total_score=weighted_total(q, c, lt, pt, priorities),
        )

    ordered = sorted(offers, key=lambda o: -scores[o.counterparty_id].total_score)
    ranking = [
        RankingEntry(
            counterparty_id=offer.counterparty_id,
            name=offer.name,
            total_score=scores[offer.counterparty_id].total_score,
            rank=index + 1,
        )
        for index, offer in enumerate(ordered)
    ]
    return ScoringResult(scores=scores, ranking=ranking)


# ===== DECISION NARRATIVE =====

_RECOMMENDATIONS = {
    "quality": "Consider requesting quality certifications or samples before finalizing the order",
    "lead time": "Discuss expedited shipping options or negotiate a buffer in your production timeline",
    "cost": "Explore volume-based pricing tiers or material substitutions for cost optimization",
    "payment terms": "Negotiate for more favorable payment milestones or consider escrow arrangements",
}

_ADVANTAGES = (
    ("quality_score", "higher quality"),
    ("cost_score", "better pricing"),
    ("lead_time_score", "faster delivery"),
    ("payment_terms_score", "better payment terms"),
)


@dataclass
class Factor:
    name: str
    weight: float
    score: float

    @property
    def contribution(self) -> float:
        return self.weight * self.score


@dataclass
class DecisionContext:
    """Structured inputs for the decision explanation."""

    winner: RankingEntry
    winner_offer: CounterpartyOffer
    winner_scores: ScoreBreakdown
    priorities: PriorityWeights
    offers: List[CounterpartyOffer]
    scores: Dict[str, ScoreBreakdown]
    ranking: List[RankingEntry]
    key_factors: List[str] = field(default_factory=list)
    caveats: List[str] = field(default_factory=list)
    competitive_lines: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    top_factors: List[str] = field(default_factory=list)
    decision_strength: str = ""
    lead_margin: float = 0.0

    @property
    def competitive_analysis(self) -> str:
        if not self.competitive_lines:
            return "No competitive data available."
        return "## Competitive Comparison\n\n" + "\n\n".join(self.competitive_lines)

    @property
    def summary(self) -> str:
        return (
            f"{self.winner.name} selected as {self.decision_strength.lower()} with "
            f"{self.winner.total_score:.1f}/100 - best balance of {' and '.join(self.top_factors)}."
        )


def build_decision_context(
    scoring: ScoringResult,
    offers: Sequence[CounterpartyOffer],
    priorities: PriorityWeights,
) -> DecisionContext:
    winner = scoring.winner
    by_id = {offer.counterparty_id: offer for offer in offers}
    winner_scores = scoring.scores[winner.counterparty_id]
    ctx = DecisionContext(
        winner=winner,
        winner_offer=by_id[winner.counterparty_id],
        winner_scores=winner_scores,
        priorities=priorities,
        offers=list(offers),
        scores=scoring.scores,
        ranking=scoring.ranking,
    )

    factors = sorted(
        [
            Factor("quality", priorities.quality, winner_scores.quality_score),
            Factor("cost", priorities.cost, winner_scores.cost_score),
            Factor("lead time", priorities.lead_time, winner_scores.lead_time_score),
            Factor("payment terms", priorities.payment_terms, winner_scores.payment_terms_score),
        ],
        key=lambda f: -f.contribution,
    )

    top = factors[:2]
    ctx.top_factors = [f.name for f in top]
    for f in top:
        if f.score >= 80:
            ctx.key_factors.append(
                f"Excellent {f.name} performance ({f.score:g}/100) - major competitive advantage "
                f"with {f.weight:g}% priority weight"
            )
        elif f.score >= 60:
            ctx.key_factors.append(
                f"Strong {f.name} ({f.score:g}/100) aligned well with your {f.weight:g}% priority weight"
            )
        elif f.score >= 40:
            ctx.key_factors.append(
                f"Acceptable {f.name} ({f.score:g}/100) at {f.weight:g}% priority - contributed to overall score"
            )

    for f in factors:
        if f.weight >= 20 and f.score < 50:
            ctx.caveats.append(
                f"{f.name.capitalize()} is a potential concern ({f.score:g}/100) "
                f"given your {f.weight:g}% priority weight"
            )
            ctx.recommendations.append(_RECOMMENDATIONS[f.name])

    competitors = scoring.ranking[1:]
    for entry in competitors:
        theirs = scoring.scores[entry.counterparty_id]
        margin = winner.total_score - entry.total_score
        advantages = [
            f"{label} ({getattr(theirs, attr):g} vs {getattr(winner_scores, attr):g})"
            for attr, label in _ADVANTAGES
            if getattr(theirs, attr) > getattr(winner_scores, attr)
        ]
        if margin < 5:
            ctx.caveats.append(
                f"Very close decision - {entry.name} scored within {margin:.1f} points "
                f"and may warrant consideration"
            )
        line = f"**{entry.name}** (Score: {entry.total_score:.1f}/100, -{margin:.1f} pts)"
        if advantages:
            line += ": Had " + ", ".join(advantages)
        ctx.competitive_lines.append(line)

    competitor_average = float(np.mean([e.total_score for e in competitors])) if competitors else 0.0
    ctx.lead_margin = winner.total_score - competitor_average
    if ctx.lead_margin > 15:
        ctx.decision_strength = "Clear Winner"
        ctx.recommendations.append(
            "Strong selection with significant competitive advantage - proceed with confidence"
        )
    elif ctx.lead_margin > 5:
        ctx.decision_strength = "Solid Choice"
        ctx.recommendations.append(
            "Good selection based on your priorities - standard due diligence recommended"
        )
    else:
        ctx.decision_strength = "Competitive"
        ctx.recommendations.append(
            "Close decision - consider maintaining relationships with runner-up suppliers as backup options"
        )
    return ctx


def fallback_reasoning(ctx: DecisionContext) -> str:
    """Deterministic markdown explanation built from the decision context."""
    p, s, offer = ctx.priorities, ctx.winner_scores, ctx.winner_offer
    rows = [
        ("Quality", p.quality, s.quality_score),
        ("Cost", p.cost, s.cost_score),
        ("Lead Time", p.lead_time, s.lead_time_score),
        ("Payment Terms", p.payment_terms, s.payment_terms_score),
    ]
    table = "\n".join(
        f"| {name} | {weight:g}% | {score:g}/100 | {score * weight / 100:.1f} pts |"
        for name, weight, score in rows
    )

    sections = [
        "## Executive Summary\n\n"
        f"**{ctx.winner.name}** achieved the highest weighted score of "
        f"**{ctx.winner.total_score:.1f}/100** based on your priority weights. This is a "
        f"**{ctx.decision_strength}** selection with {ctx.lead_margin:.1f} points above the "
        "competitive average.",
        "## Your Priority Alignment\n\n"
        "| Criterion | Your Priority | Score | Contribution |\n"
        "|-----------|---------------|-------|--------------|\n" + table,
        "## Selected Offer Details\n\n"
        f"- **Unit Price:** ${offer.unit_price:.2f}\n"
        f"- **Lead Time:** {offer.lead_time_days} days\n"
        f"- **Payment Terms:** {offer.payment_terms}\n"
        f"- **Quality Rating:** {offer.quality_rating:g}/5.0",
    ]
    if ctx.key_factors:
        sections.append("## Key Decision Drivers\n\n" + "\n".join(f"- {k}" for k in ctx.key_factors))
    if ctx.caveats:
        sections.append("## Considerations & Risks\n\n" + "\n".join(f"⚠️ {c}" for c in ctx.caveats))
    sections.append(ctx.competitive_analysis)
    if ctx.recommendations:
        sections.append(
            "## Strategic Recommendations\n\n"
            + "\n".join(f"{i}. {r}" for i, r in enumerate(ctx.recommendations, 1))
        )
    return "\n\n".join(sections)


async def make_decision(
    results: Sequence[NegotiationResult],
    priorities: PriorityWeights,
    reasoning_generator: Optional[ReasoningGenerator] = None,
) -> Decision:
    """Score finished negotiations and assemble the final decision.

    Negotiations without final terms (impasse) are not scored.

    Raises:
        NegotiationError: If no negotiation produced final terms.
    """
    offers = [offer for offer in map(CounterpartyOffer.from_result, results) if offer is not None]
    if not offers:
        raise NegotiationError("No negotiation produced final terms to score")

    scoring = score_offers(offers, priorities)
    ctx = build_decision_context(scoring, offers, priorities)

    reasoning, used_fallback = None, True
    if reasoning_generator is not None:
        try:
            reasoning = await reasoning_generator.explain(ctx)
            used_fallback = not (reasoning and reasoning.strip())
        except Exception as exc:
            logger.warning("Reasoning generation failed, using template: %s", exc)
    if used_fallback:
        reasoning = fallback_reasoning(ctx)

    logger.info("Selected %s (%.2f): %s", ctx.winner.counterparty_id, ctx.winner.total_score, ctx.summary)
    return Decision(
        selected_counterparty_id=ctx.winner.counterparty_id,
        reasoning=reasoning,
        scores=scoring.scores,
        ranking=scoring.ranking,
        summary=ctx.summary,
        used_fallback_reasoning=used_fallback,
    )


def scores_frame(decision: Decision) -> pd.DataFrame:
    """Per-counterparty scores as a DataFrame ordered by rank."""
    names = {entry.counterparty_id: entry.name for entry in decision.ranking}
    ranks = {entry.counterparty_id: entry.rank for entry in decision.ranking}
    rows = [
        {
            "counterparty_id": cid,
            "name": names.get(cid, cid),
            "rank": ranks.get(cid),
            **breakdown.model_dump(),
        }
        for cid, breakdown in decision.scores.items()
    ]
    frame = pd.DataFrame(rows)
    if frame.empty:
        return frame
    return frame.sort_values("rank").set_index("counterparty_id")
