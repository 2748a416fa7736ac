"""
Deterministic rule-based message generators for both sides of the table.

They stand in for language-model agents so the simulator runs offline and
tests are reproducible: the brand concedes linearly from an opening target
toward the list price, the supplier walks down its discount schedule and
accepts anything at or above its floor.
"""

import logging
from typing import Callable, List, Optional

from .actions import CollaboratorResponse, RawAction
from .catalog import quote_round
from .collaborators import RoundContext
from .exceptions import GenerationError
from .guidance import ParsedInstructions
from .models import Offer, OfferSource, QualityImpact
from .substitutions import SubstitutionStatus

logger = logging.getLogger(__name__)

_ACCEPTABLE_IMPACTS = (QualityImpact.NONE, QualityImpact.MINOR)


def _list_price(context: RoundContext) -> float:
    """Volume-discounted average price before any round discount."""
    if not context.line_items:
        raise GenerationError(f"No priced line items in {context.negotiation_id}")
    quote = quote_round(
        context.line_items, 0, context.counterparty, context.volume_discount, discount=0.0
    )
    return quote.average_unit_price


class ScriptedBrandAgent:
    """Brand-side generator using a linear concession schedule.

    Args:
        target_discount: Opening ask below list price, as a fraction.
        accept_threshold: Accept a supplier price within this fraction
            above the current aspiration.
        preferred_terms: Payment terms to ask for; defaults to the
            supplier's own terms.
    """

    def __init__(
        self,
        target_discount: float = 0.15,
        accept_threshold: float = 0.02,
        preferred_terms: Optional[str] = None,
    ) -> None:
        self.target_discount = target_discount
        self.accept_threshold = accept_threshold
        self.preferred_terms = preferred_terms

    def aspiration(self, context: RoundContext, instructions: ParsedInstructions) -> float:
        list_price = _list_price(context)
        opening = list_price * (1 - self.target_discount)
        t = min(1.0, context.round_num / max(1, context.max_rounds - 1))
        price = opening + t * (list_price - opening)
        if instructions.price_limit is not None:
            price = min(price, instructions.price_limit)
        return round(price, 2)

    async def generate(self, context: RoundContext) -> CollaboratorResponse:
        instructions = context.guidance.instructions() if context.guidance else ParsedInstructions()
        actions: List[RawAction] = self._substitution_decisions(context)

        supplier_offer = context.latest_offer(OfferSource.SUPPLIER)
        aspiration = self.aspiration(context, instructions)

        if instructions.walk_away:
            actions.append(RawAction(name="reject", args={
                "reason": "Instructed to walk away", "ends_negotiation": True,
            }))
            return CollaboratorResponse(
                text="We have decided to end this negotiation.", structured_actions=actions
            )

        if supplier_offer is not None and self._acceptable(supplier_offer, aspiration, instructions, context):
            logger.debug(
                "Brand accepting $%.2f in %s (aspiration $%.2f)",
                supplier_offer.unit_price, context.negotiation_id, aspiration,
            )
            actions.append(RawAction(name="accept", args={"terms": supplier_offer.model_dump()}))
            return CollaboratorResponse(
                text=(
                    f"We accept ${supplier_offer.unit_price:.2f}/unit with "
                    f"{supplier_offer.lead_time_days}-day delivery and "
                    f"{supplier_offer.payment_terms} payment terms."
                ),
                structured_actions=actions,
            )

        lead_time = context.counterparty.lead_time_days
        if instructions.lead_time_limit is not None:
            lead_time = min(lead_time, instructions.lead_time_limit)
        offer = Offer(
            unit_price=aspiration,
            lead_time_days=lead_time,
            payment_terms=self.preferred_terms or context.counterparty.payment_terms,
        )

        if (
            supplier_offer is not None
            and instructions.price_limit is not None
            and supplier_offer.unit_price > instructions.price_limit
        ):
            actions.append(RawAction(name="reject", args={
                "reason": f"Price above our ${instructions.price_limit:.2f} limit",
                "ends_negotiation": False,
            }))

        if context.round_num == 0 or supplier_offer is None:
            actions.append(RawAction(name="propose", args={"offer": offer.model_dump()}))
            text = (
                f"We are interested in sourcing {context.product_summary}. "
                f"We are targeting ${offer.unit_price:.2f}/unit for "
                f"{context.total_quantity:,} units with {offer.lead_time_days}-day delivery."
            )
        else:
            actions.append(RawAction(name="counter", args={
                "offer": offer.model_dump(),
                "explanation": f"Moving to ${offer.unit_price:.2f} in round {context.round_num + 1}",
            }))
            text = (
                f"Thank you. We can move to ${offer.unit_price:.2f}/unit, "
                f"{offer.lead_time_days} days, {offer.payment_terms}."
            )
        return CollaboratorResponse(text=text, structured_actions=actions)

    def _acceptable(
        self,
        offer: Offer,
        aspiration: float,
        instructions: ParsedInstructions,
        context: RoundContext,
    ) -> bool:
        if instructions.lead_time_limit is not None and offer.lead_time_days > instructions.lead_time_limit:
            return False
        if instructions.price_limit is not None and offer.unit_price > instructions.price_limit:
            return False
        if instructions.accept_if_met and instructions.price_limit is not None:
            return True
        # More lenient in the final round
        if context.is_final_round and offer.unit_price <= _list_price(context):
            return True
        return offer.unit_price <= aspiration * (1 + self.accept_threshold)

    @staticmethod
    def _substitution_decisions(context: RoundContext) -> List[RawAction]:
        decisions = []
        for record in context.substitutions:
            if record.status != SubstitutionStatus.PENDING:
                continue
            if record.proposal.quality_impact in _ACCEPTABLE_IMPACTS:
                decisions.append(RawAction(name="accept_substitution", args={
                    "substitution_id": record.substitution_id,
                }))
            else:
                decisions.append(RawAction(name="reject_substitution", args={
                    "substitution_id": record.substitution_id,
                    "reason": "quality_concerns",
                }))
        return decisions


class ScriptedSupplierAgent:
    """Supplier-side generator following the round discount schedule.

    The floor price is the list price less the full price flexibility. A
    brand offer at or above the floor is accepted.
    """

    def __init__(self, suggest_substitutions: bool = True) -> None:
        self.suggest_substitutions = suggest_substitutions

    def floor_price(self, context: RoundContext) -> float:
        quote = quote_round(
            context.line_items, context.round_num, context.counterparty, context.volume_discount,
            discount=context.counterparty.price_flexibility,
        )
        return round(quote.average_unit_price, 2)

    async def generate(self, context: RoundContext) -> CollaboratorResponse:
        profile = context.counterparty
        actions: List[RawAction] = []

        if self.suggest_substitutions and context.round_num == 0:
            actions.extend(self._suggest_substitution(context))

        brand_offer = context.latest_offer(OfferSource.BRAND)
        if brand_offer is not None and brand_offer.unit_price >= self.floor_price(context):
            terms = Offer(
                unit_price=brand_offer.unit_price,
                lead_time_days=profile.lead_time_days,
                payment_terms=profile.payment_terms,
            )
            actions.append(RawAction(name="accept", args={"terms": terms.model_dump()}))
            return CollaboratorResponse(
                text=(
                    f"{profile.name} accepts ${terms.unit_price:.2f}/unit with "
                    f"{terms.lead_time_days}-day delivery and {terms.payment_terms} payment terms."
                ),
                structured_actions=actions,
            )

        offer = Offer(
            unit_price=round(context.reference_quote.average_unit_price, 2),
            lead_time_days=profile.lead_time_days,
            payment_terms=profile.payment_terms,
        )
        name = "propose" if context.round_num == 0 else "counter"
        args = {"offer": offer.model_dump()}
        if name == "counter":
            args["explanation"] = f"{context.reference_quote.discount:.0%} off list"
        actions.append(RawAction(name=name, args=args))

        text = (
            f"We at {profile.name} can offer ${offer.unit_price:.2f}/unit with "
            f"{offer.lead_time_days}-day delivery and {offer.payment_terms} payment terms."
        )
        if context.volume_discount.percent:
            text += f" This includes our {context.volume_discount.description}."
        return CollaboratorResponse(text=text, structured_actions=actions)

    @staticmethod
    def _suggest_substitution(context: RoundContext) -> List[RawAction]:
        for line in context.line_items:
            sub = line.material_substitution
            if sub is None:
                continue
            proposal = {
                "product_id": line.product_id,
                "original_material": sub.original,
                "suggested_material": sub.suggested,
                "cost_reduction_percent": min(sub.savings_percent, 50),
                "quality_impact": QualityImpact.MINOR.value,
                "quality_justification": sub.description,
            }
            return [RawAction(name="suggest_substitution", args={
                "proposal": proposal,
                "substitution_id": f"sub-{context.counterparty.counterparty_id}-{line.product_id}",
            })]
        return []


def scripted_brand_factory(**kwargs) -> Callable[[str], ScriptedBrandAgent]:
    """Factory producing a fresh brand agent per counterparty id."""
    def factory(counterparty_id: str) -> ScriptedBrandAgent:
        return ScriptedBrandAgent(**kwargs)
    return factory


def scripted_supplier_factory(**kwargs) -> Callable[[str], ScriptedSupplierAgent]:
    """Factory producing a fresh supplier agent per counterparty id."""
    def factory(counterparty_id: str) -> ScriptedSupplierAgent:
        return ScriptedSupplierAgent(**kwargs)
    return factory
