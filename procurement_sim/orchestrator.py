"""
Negotiation orchestrator: one round-based state machine per counterparty.

Each round the brand speaks first, then the supplier. Offers are captured
into the negotiation's own ledger, substitution actions into its own
substitution ledger, and every message goes through the persistence
callbacks. Explicit acceptance by either side completes the negotiation;
otherwise the last round auto-resolves to the best captured offer.
"""

from __future__ import annotations

import logging
import math
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional

from .actions import (
    AcceptSubstitutionAction,
    ActionType,
    CollaboratorResponse,
    OutcomeStatus,
    SuggestSubstitutionAction,
    extract_offer,
    extract_outcome,
    find_action,
    primary_action,
    substitution_actions,
)
from .catalog import (
    CounterpartyProfile,
    Product,
    RoundQuote,
    build_line_items,
    create_counterparty_config,
    product_summary,
    quote_round,
    volume_discount,
)
from .collaborators import (
    MessageGenerator,
    NegotiationCallbacks,
    OfferNotice,
    RoundContext,
    fallback_brand_message,
    fallback_supplier_message,
    no_op_callbacks,
)
from .config import Settings, get_settings
from .exceptions import CatalogError, InvalidTransitionError, PersistenceError
from .guidance import FormattedGuidance, build_guidance_context, combine_guidance
from .impasse import REASON_EXPLICIT_REJECTION, ImpasseEvaluator
from .models import (
    FinalOffer,
    ImpasseResult,
    LineItemRequest,
    LineOffer,
    MessageRecord,
    NegotiationResult,
    NegotiationStatus,
    Offer,
    OfferSource,
    PriorityWeights,
)
from .offer_ledger import OfferLedger
from .substitutions import SubstitutionLedger

logger = logging.getLogger(__name__)


@dataclass
class NegotiationRequest:
    """Input for a single counterparty negotiation."""

    counterparty_id: str
    line_items: List[LineItemRequest]
    priorities: PriorityWeights = field(default_factory=PriorityWeights)
    negotiation_id: Optional[str] = None
    max_rounds: Optional[int] = None
    user_notes: str = ""
    start_time: Optional[float] = None
    target_price: Optional[float] = None


@dataclass
class NegotiationState:
    """Mutable status of one negotiation; terminal states are final."""

    counterparty_id: str
    max_rounds: int
    round_num: int = 0
    status: NegotiationStatus = NegotiationStatus.ACTIVE
    final_offer: Optional[Offer] = None

    def complete(self, offer: Offer) -> None:
        self._transition(NegotiationStatus.COMPLETED)
        self.final_offer = offer

    def declare_impasse(self) -> None:
        self._transition(NegotiationStatus.IMPASSE)

    def _transition(self, status: NegotiationStatus) -> None:
        if self.status.is_terminal:
            raise InvalidTransitionError(
                f"Negotiation with {self.counterparty_id} is already {self.status.value}"
            )
        self.status = status


class NegotiationOrchestrator:
    """Drive one negotiation to a terminal status.

    Args:
        request: What to negotiate and with whom.
        brand: Message generator speaking for the brand.
        supplier: Message generator speaking for the counterparty.
        callbacks: Persistence and guidance hooks; defaults to no-ops.
        profile: Counterparty profile; resolved from ``profiles`` by id
            when omitted.
        catalog: Product catalog override.
        impasse_evaluator: Evaluator run after every round.
        terminate_on_impasse: End the negotiation in ``impasse`` when a
            party ends talks or an impasse is detected. Off by default,
            in which case every negotiation closes a deal.
        rng: Source of the round-count jitter when ``request.max_rounds``
            is not fixed.
    """

    def __init__(
        self,
        request: NegotiationRequest,
        brand: MessageGenerator,
        supplier: MessageGenerator,
        callbacks: Optional[NegotiationCallbacks] = None,
        *,
        profile: Optional[CounterpartyProfile] = None,
        profiles: Optional[Mapping[str, CounterpartyProfile]] = None,
        catalog: Optional[Mapping[str, Product]] = None,
        impasse_evaluator: Optional[ImpasseEvaluator] = None,
        terminate_on_impasse: Optional[bool] = None,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        settings = settings or get_settings()
        self.request = request
        self.brand = brand
        self.supplier = supplier
        self.callbacks = callbacks or no_op_callbacks()
        self.profile = profile or create_counterparty_config(request.counterparty_id, profiles)
        self.impasse_evaluator = impasse_evaluator or ImpasseEvaluator.from_settings(settings)
        self.terminate_on_impasse = (
            settings.TERMINATE_ON_IMPASSE if terminate_on_impasse is None else terminate_on_impasse
        )
        self.stall_tolerance_percent = settings.STALL_TOLERANCE_PERCENT
        self._clock = clock

        self.negotiation_id = request.negotiation_id or (
            f"{request.counterparty_id}-{uuid.uuid4().hex[:8]}"
        )
        self.line_items: List[LineOffer] = build_line_items(request.line_items, self.profile, catalog)
        if not self.line_items:
            raise CatalogError(f"No catalog products to negotiate with {request.counterparty_id}")
        self.total_quantity = sum(line.quantity for line in self.line_items)
        self.volume = volume_discount(self.total_quantity)
        self.product_summary = product_summary(request.line_items, catalog)

        max_rounds = request.max_rounds or settings.resolve_max_rounds(rng)
        self.state = NegotiationState(counterparty_id=request.counterparty_id, max_rounds=max_rounds)
        self.ledger = OfferLedger(request.counterparty_id, clock=clock)
        self.substitutions = SubstitutionLedger(request.counterparty_id, clock=clock)
        self.messages: List[MessageRecord] = []
        self.guidance: Optional[FormattedGuidance] = None
        self.last_impasse: Optional[ImpasseResult] = None
        self.impasse_reason: Optional[str] = None

        self._last_guidance_time = request.start_time if request.start_time is not None else clock()
        self._quote: RoundQuote = quote_round(self.line_items, 0, self.profile, self.volume)
        self._list_price = self._quote.average_unit_price
        self._ended_by_party = False

    # ---------- Core Run ----------
    async def run(self) -> NegotiationResult:
        logger.info(
            "Negotiation %s with %s: %d products, %d units, %d rounds",
            self.negotiation_id, self.profile.name, len(self.line_items),
            self.total_quantity, self.state.max_rounds,
        )

        for round_num in range(self.state.max_rounds):
            if self.state.status.is_terminal:
                break
            await self._play_round(round_num)

        if self.state.status == NegotiationStatus.ACTIVE:
            self._auto_resolve()

        final_offer = self._build_final_offer(self.state.final_offer)
        result = self._result(final_offer)
        await self._notify(
            "on_status_change",
            self.callbacks.on_status_change,
            self.negotiation_id, self.state.status, result.round_count, final_offer,
        )
        logger.info("Negotiation %s finished: %s", self.negotiation_id, result.summary())
        return result

    async def _play_round(self, round_num: int) -> None:
        self.state.round_num = round_num
        self._ended_by_party = False
        logger.debug("Negotiation %s round %d/%d", self.negotiation_id, round_num + 1, self.state.max_rounds)

        await self._refresh_guidance()
        self._quote = quote_round(self.line_items, round_num, self.profile, self.volume)

        brand_context = self._context(OfferSource.BRAND, self._last_text(OfferSource.SUPPLIER))
        brand_response = await self._generate(self.brand, brand_context, fallback_brand_message)
        await self._handle_turn(OfferSource.BRAND, brand_response, round_num)
        if self.state.status.is_terminal:
            return

        supplier_context = self._context(OfferSource.SUPPLIER, brand_response.text)
        supplier_response = await self._generate(self.supplier, supplier_context, fallback_supplier_message)
        await self._handle_turn(OfferSource.SUPPLIER, supplier_response, round_num)
        if self.state.status.is_terminal:
            return

        self._evaluate_impasse(round_num)

    # ---------- Turns ----------
    async def _generate(
        self,
        generator: MessageGenerator,
        context: RoundContext,
        fallback: Callable[[RoundContext], CollaboratorResponse],
    ) -> CollaboratorResponse:
        try:
            return await generator.generate(context)
        except Exception as exc:
            logger.warning(
                "%s generation failed for %s round %d, using fallback: %s",
                context.side.value, self.negotiation_id, context.round_num, exc,
            )
            return fallback(context)

    async def _handle_turn(self, source: OfferSource, response: CollaboratorResponse, round_num: int) -> None:
        action_names = [raw.name for raw in response.structured_actions]
        message = MessageRecord(
            sender=source.value,
            content=response.text,
            timestamp=self._clock(),
            metadata=(
                {"actions": action_names, "primary_action": getattr(primary_action(response), "value", None)}
                if action_names else {}
            ),
        )
        self.messages.append(message)

        self._apply_substitutions(response, round_num)

        offer = extract_offer(response)
        if offer is not None:
            raw = find_action(response, ActionType.PROPOSE) or find_action(response, ActionType.COUNTER)
            self.ledger.add_offer(round_num, source, offer, action_ref=raw.ref if raw else None)
            logger.debug(
                "%s offer from %s: $%.2f, %d days, %s", source.value, self.profile.name,
                offer.unit_price, offer.lead_time_days, offer.payment_terms,
            )

        self._apply_outcome(source, response)

        if source == OfferSource.SUPPLIER and self.callbacks.on_offer_received is not None:
            notice = OfferNotice(
                counterparty_id=self.profile.counterparty_id,
                avg_price=offer.unit_price if offer else self._quote.average_unit_price,
                lead_time=offer.lead_time_days if offer else self.profile.lead_time_days,
                payment_terms=offer.payment_terms if offer else self.profile.payment_terms,
            )
            await self._notify("on_offer_received", self.callbacks.on_offer_received, self.negotiation_id, notice)

        await self._notify("on_message", self.callbacks.on_message, self.negotiation_id, message)

    def _apply_outcome(self, source: OfferSource, response: CollaboratorResponse) -> None:
        outcome = extract_outcome(response)
        if outcome.status == OutcomeStatus.ACCEPTED:
            terms = outcome.offer
            if terms is None:
                latest = self.ledger.latest()
                terms = latest.offer if latest else None
            if terms is None:
                logger.warning("%s accepted without terms and no offer on record; ignoring", source.value)
                return
            self.state.complete(terms)
            logger.info(
                "%s accepted $%.2f/unit with %s in round %d",
                source.value, terms.unit_price, self.profile.name, self.state.round_num + 1,
            )
        elif outcome.status in (OutcomeStatus.REJECTED, OutcomeStatus.IMPASSE):
            ends = outcome.status == OutcomeStatus.IMPASSE
            self._ended_by_party = self._ended_by_party or ends
            if ends and self.terminate_on_impasse:
                self.state.declare_impasse()
                self.impasse_reason = outcome.reason or REASON_EXPLICIT_REJECTION
                logger.info("%s ended negotiation %s: %s", source.value, self.negotiation_id, self.impasse_reason)
                return
            logger.warning(
                "Ignoring %s rejection in %s (ends negotiation: %s, reason: %s)",
                source.value, self.negotiation_id, ends, outcome.reason or "none given",
            )

    def _apply_substitutions(self, response: CollaboratorResponse, round_num: int) -> None:
        for action in substitution_actions(response):
            try:
                if isinstance(action, SuggestSubstitutionAction):
                    substitution_id = action.substitution_id or (
                        f"sub-{round_num}-{action.proposal.product_id}"
                    )
                    self.substitutions.propose(action.proposal, substitution_id)
                    logger.info(
                        "Substitution %s proposed: %s -> %s (%g%%)", substitution_id,
                        action.proposal.original_material, action.proposal.suggested_material,
                        action.proposal.cost_reduction_percent,
                    )
                    continue
                if isinstance(action, AcceptSubstitutionAction):
                    record = self.substitutions.accept(action.substitution_id, action.conditions)
                else:
                    record = self.substitutions.reject(
                        action.substitution_id, action.reason or action.explanation
                    )
                if record is None:
                    logger.warning("Unknown substitution %s in %s", action.substitution_id, self.negotiation_id)
            except InvalidTransitionError as exc:
                logger.warning("Ignoring substitution action in %s: %s", self.negotiation_id, exc)

    # ---------- Guidance ----------
    async def _refresh_guidance(self) -> None:
        fetch = self.callbacks.get_user_interventions
        if fetch is None:
            return
        try:
            interventions = await fetch(self.negotiation_id, self._last_guidance_time)
        except Exception as exc:
            logger.warning("Failed to fetch user interventions for %s: %s", self.negotiation_id, exc)
            return

        fresh = [i for i in interventions if i.timestamp > self._last_guidance_time]
        if not fresh:
            return
        self.guidance = combine_guidance(self.guidance, fresh)
        self._last_guidance_time = max(i.timestamp for i in fresh)
        logger.info(
            "Applied %d intervention(s) to %s%s", len(fresh), self.negotiation_id,
            " (urgent)" if self.guidance.has_urgent_request else "",
        )

    # ---------- Impasse ----------
    def _evaluate_impasse(self, round_num: int) -> None:
        target = self.request.target_price or self._list_price
        result = self.impasse_evaluator.detect(
            round_num, self.ledger, explicit_rejection=self._ended_by_party, target_price=target,
        )
        self.last_impasse = result
        window = self.impasse_evaluator.config.progress_window_size
        if self.ledger.is_stalled(window, self.stall_tolerance_percent):
            logger.info(
                "Supplier prices in %s stalled within %g%% over the last %d offers",
                self.negotiation_id, self.stall_tolerance_percent, window,
            )
        if not result.is_impasse:
            return
        if self.terminate_on_impasse:
            self.state.declare_impasse()
            self.impasse_reason = result.primary_reason
            logger.info("Negotiation %s reached impasse: %s", self.negotiation_id, result.details)
        else:
            logger.info(
                "Impasse signal in %s round %d, continuing: %s",
                self.negotiation_id, round_num + 1, result.details,
            )

    # ---------- Resolution ----------
    def _best_captured_offer(self) -> Optional[Offer]:
        supplier_offers = self.ledger.all_by_source(OfferSource.SUPPLIER)
        if supplier_offers:
            return min(supplier_offers, key=lambda entry: entry.offer.unit_price).offer
        latest = self.ledger.latest()
        return latest.offer if latest else None

    def _auto_resolve(self) -> None:
        offer = self._best_captured_offer()
        if offer is None:
            offer = Offer(
                unit_price=round(self._quote.average_unit_price, 2),
                lead_time_days=self.profile.lead_time_days,
                payment_terms=self.profile.payment_terms,
            )
            logger.info("No offer captured in %s, using schedule price $%.2f", self.negotiation_id, offer.unit_price)
        else:
            logger.info("Auto-resolving %s at $%.2f/unit", self.negotiation_id, offer.unit_price)
        self.state.complete(offer)

    def _build_final_offer(self, offer: Optional[Offer]) -> Optional[FinalOffer]:
        if offer is None:
            return None
        products = [
            line.model_copy(update={
                "unit_price": offer.unit_price,
                "line_total": round(offer.unit_price * line.quantity, 2),
            })
            for line in self.line_items
        ]
        subtotal = sum(line.line_total for line in products)
        return FinalOffer(
            products=products,
            subtotal=subtotal,
            volume_discount=subtotal * (self.volume.percent / 100),
            volume_discount_percent=self.volume.percent,
            unit_price=offer.unit_price,
            lead_time_days=offer.lead_time_days,
            payment_terms=offer.payment_terms,
        )

    def _result(self, final_offer: Optional[FinalOffer]) -> NegotiationResult:
        return NegotiationResult(
            negotiation_id=self.negotiation_id,
            counterparty_id=self.profile.counterparty_id,
            counterparty_name=self.profile.name,
            quality_rating=self.profile.quality_rating,
            status=self.state.status,
            final_offer=final_offer,
            round_count=math.ceil(len(self.messages) / 2),
            max_rounds=self.state.max_rounds,
            messages=list(self.messages),
            history=self.ledger.history,
            stats=self.ledger.stats(),
            substitution_summary=self.substitutions.summary(),
            substitution_savings_percent=self.substitutions.calculate_total_savings(),
            substitution_quality_impact=self.substitutions.calculate_quality_impact(),
            substitution_lead_time_change=self.substitutions.calculate_lead_time_change(),
            impasse=self.last_impasse,
            impasse_reason=self.impasse_reason,
        )

    # ---------- Helpers ----------
    def _context(self, side: OfferSource, other_side_message: Optional[str]) -> RoundContext:
        is_brand = side == OfferSource.BRAND
        return RoundContext(
            negotiation_id=self.negotiation_id,
            round_num=self.state.round_num,
            max_rounds=self.state.max_rounds,
            side=side,
            counterparty=self.profile,
            line_items=list(self.line_items),
            priorities=self.request.priorities,
            reference_quote=self._quote,
            volume_discount=self.volume,
            product_summary=self.product_summary,
            user_notes=self.request.user_notes,
            offer_history=self.ledger.history,
            prior_messages=list(self.messages),
            guidance=self.guidance if is_brand else None,
            guidance_text=build_guidance_context(self.guidance) if is_brand else "",
            other_side_message=other_side_message,
            substitutions=self.substitutions.all(),
        )

    def _last_text(self, source: OfferSource) -> Optional[str]:
        for message in reversed(self.messages):
            if message.sender == source.value:
                return message.content
        return None

    async def _notify(self, name: str, callback, *args) -> None:
        try:
            await callback(*args)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(name, self.negotiation_id, str(exc)) from exc


async def run_negotiation(
    request: NegotiationRequest,
    brand: MessageGenerator,
    supplier: MessageGenerator,
    callbacks: Optional[NegotiationCallbacks] = None,
    **kwargs,
) -> NegotiationResult:
    """Convenience wrapper: build an orchestrator and run it."""
    return await NegotiationOrchestrator(request, brand, supplier, callbacks, **kwargs).run()
