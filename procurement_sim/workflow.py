"""
Quote workflow: negotiate with several suppliers in parallel, then decide.

Negotiations share nothing but read-only catalog data. A failure in one is
recorded and logged without cancelling the others.
"""

import asyncio
import logging
import random
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from .catalog import CounterpartyProfile, Product
from .collaborators import MessageGenerator, NegotiationCallbacks, ReasoningGenerator
from .exceptions import NegotiationError
from .models import Decision, LineItemRequest, NegotiationResult, PriorityWeights
from .orchestrator import NegotiationOrchestrator, NegotiationRequest
from .scoring import make_decision

logger = logging.getLogger(__name__)

GeneratorFactory = Callable[[str], MessageGenerator]
CallbacksFactory = Callable[[str], NegotiationCallbacks]


@dataclass
class FanInResult:
    successes: List[NegotiationResult] = field(default_factory=list)
    failures: List[Tuple[str, BaseException]] = field(default_factory=list)


@dataclass
class WorkflowResult:
    quote_id: str
    negotiations: List[NegotiationResult]
    failures: List[Tuple[str, BaseException]]
    decision: Decision

    @property
    def selected(self) -> NegotiationResult:
        for result in self.negotiations:
            if result.counterparty_id == self.decision.selected_counterparty_id:
                return result
        raise KeyError(self.decision.selected_counterparty_id)


async def run_negotiations(
    order: Sequence[LineItemRequest],
    counterparty_ids: Sequence[str],
    brand_factory: GeneratorFactory,
    supplier_factory: GeneratorFactory,
    callbacks_factory: Optional[CallbacksFactory] = None,
    priorities: Optional[PriorityWeights] = None,
    *,
    quote_id: Optional[str] = None,
    max_rounds: Optional[int] = None,
    user_notes: str = "",
    profiles: Optional[Mapping[str, CounterpartyProfile]] = None,
    catalog: Optional[Mapping[str, Product]] = None,
    seed: Optional[int] = None,
    **orchestrator_kwargs,
) -> FanInResult:
    """Run one negotiation per counterparty concurrently and collect outcomes.

    Results keep the order of ``counterparty_ids``. Each negotiation gets its
    own generators, callbacks and random source.
    """
    priorities = priorities or PriorityWeights()
    quote_id = quote_id or uuid.uuid4().hex[:8]

    async def negotiate(index: int, counterparty_id: str) -> NegotiationResult:
        request = NegotiationRequest(
            counterparty_id=counterparty_id,
            line_items=list(order),
            priorities=priorities,
            negotiation_id=f"{quote_id}-{counterparty_id}",
            max_rounds=max_rounds,
            user_notes=user_notes,
        )
        orchestrator = NegotiationOrchestrator(
            request,
            brand_factory(counterparty_id),
            supplier_factory(counterparty_id),
            callbacks_factory(request.negotiation_id) if callbacks_factory else None,
            profiles=profiles,
            catalog=catalog,
            rng=random.Random(seed + index) if seed is not None else None,
            **orchestrator_kwargs,
        )
        return await orchestrator.run()

    outcomes = await asyncio.gather(
        *(negotiate(i, cid) for i, cid in enumerate(counterparty_ids)),
        return_exceptions=True,
    )

    fan_in = FanInResult()
    for counterparty_id, outcome in zip(counterparty_ids, outcomes):
        if isinstance(outcome, BaseException):
            logger.error("Negotiation with %s failed: %s", counterparty_id, outcome)
            fan_in.failures.append((counterparty_id, outcome))
        else:
            fan_in.successes.append(outcome)
    logger.info(
        "Quote %s: %d negotiation(s) finished, %d failed",
        quote_id, len(fan_in.successes), len(fan_in.failures),
    )
    return fan_in


async def run_sourcing_workflow(
    order: Sequence[LineItemRequest],
    counterparty_ids: Sequence[str],
    brand_factory: GeneratorFactory,
    supplier_factory: GeneratorFactory,
    callbacks_factory: Optional[CallbacksFactory] = None,
    priorities: Optional[PriorityWeights] = None,
    reasoning_generator: Optional[ReasoningGenerator] = None,
    *,
    quote_id: Optional[str] = None,
    **kwargs,
) -> WorkflowResult:
    """Negotiate with every counterparty, then score and pick a winner.

    Raises:
        NegotiationError: If no negotiation finished successfully or none
            produced final terms.
    """
    priorities = priorities or PriorityWeights()
    quote_id = quote_id or uuid.uuid4().hex[:8]

    fan_in = await run_negotiations(
        order, counterparty_ids, brand_factory, supplier_factory, callbacks_factory,
        priorities, quote_id=quote_id, **kwargs,
    )
    if not fan_in.successes:
        raise NegotiationError(
            f"All {len(fan_in.failures)} negotiation(s) for quote {quote_id} failed"
        )

    decision = await make_decision(fan_in.successes, priorities, reasoning_generator)
    return WorkflowResult(
        quote_id=quote_id,
        negotiations=fan_in.successes,
        failures=fan_in.failures,
        decision=decision,
    )
