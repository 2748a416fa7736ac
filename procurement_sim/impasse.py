"""
Stateless impasse detection over an offer ledger.

Five conditions are computed independently; the primary reason is chosen by
a fixed priority order rather than by how badly a condition is violated.
"""

import logging
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from .models import ImpasseConditions, ImpasseResult, OfferSource
from .offer_ledger import OfferLedger

logger = logging.getLogger(__name__)


REASON_EXPLICIT_REJECTION = "Explicit rejection by party"
REASON_PRICE_GAP = "Price gap exceeds threshold"
REASON_NO_PROGRESS = "No progress in recent rounds"
REASON_MAX_ROUNDS = "Maximum rounds reached"
REASON_LEAD_TIME = "Lead time exceeds maximum"


class ImpasseConfig(BaseModel):
    """Thresholds for the impasse evaluator."""

    max_rounds: int = Field(10, ge=1)
    progress_window_size: int = Field(3, ge=1)
    price_gap_threshold: float = Field(0.25, gt=0)
    max_acceptable_lead_time: int = Field(60, gt=0)


class ImpasseEvaluator:
    """Evaluate whether a negotiation can still make productive progress."""

    def __init__(self, config: Optional[ImpasseConfig] = None, **overrides):
        base = config or ImpasseConfig()
        self.config = ImpasseConfig(**{**base.model_dump(), **overrides}) if overrides else base

    @classmethod
    def from_settings(cls, settings) -> "ImpasseEvaluator":
        return cls(ImpasseConfig(**settings.get_impasse_settings()))

    def detect(
        self,
        current_round: int,
        ledger: OfferLedger,
        explicit_rejection: bool = False,
        target_price: Optional[float] = None,
    ) -> ImpasseResult:
        """Evaluate all impasse conditions for the given round.

        Args:
            current_round: Zero-based index of the round just played.
            ledger: Offer history of the negotiation under evaluation.
            explicit_rejection: Whether a party rejected and ended talks.
            target_price: Reference price used when the brand has not yet
                recorded an offer.

        Returns:
            ImpasseResult: Conditions, the highest-priority reason and a
            details string with one clause per triggered condition.
        """
        cfg = self.config
        gap, gap_ratio = self._price_gap(ledger, target_price)
        latest = ledger.latest()

        conditions = ImpasseConditions(
            max_rounds_reached=current_round >= cfg.max_rounds,
            explicit_rejection=explicit_rejection,
            no_progress_in_rounds=not ledger.has_price_improved(cfg.progress_window_size),
            price_gap_too_large=gap_ratio is not None and gap_ratio > cfg.price_gap_threshold,
            lead_time_unacceptable=(
                latest is not None and latest.offer.lead_time_days > cfg.max_acceptable_lead_time
            ),
        )

        # Priority order: first triggered reason wins
        triggered: List[Tuple[str, str]] = []
        if conditions.explicit_rejection:
            triggered.append(
                (REASON_EXPLICIT_REJECTION, "Negotiation explicitly ended by one party.")
            )
        if conditions.price_gap_too_large:
            triggered.append((
                REASON_PRICE_GAP,
                f"Price gap of ${gap:.2f} ({gap_ratio:.1%}) exceeds acceptable "
                f"threshold of {cfg.price_gap_threshold:.0%}.",
            ))
        if conditions.no_progress_in_rounds:
            triggered.append((
                REASON_NO_PROGRESS,
                f"No price improvement in last {cfg.progress_window_size} rounds.",
            ))
        if conditions.max_rounds_reached:
            triggered.append((
                REASON_MAX_ROUNDS,
                f"Maximum {cfg.max_rounds} rounds reached without agreement.",
            ))
        if conditions.lead_time_unacceptable:
            triggered.append((
                REASON_LEAD_TIME,
                f"Lead time of {latest.offer.lead_time_days} days exceeds "
                f"{cfg.max_acceptable_lead_time}-day limit.",
            ))

        result = ImpasseResult(
            is_impasse=bool(triggered),
            conditions=conditions,
            primary_reason=triggered[0][0] if triggered else None,
            details=" ".join(clause for _, clause in triggered),
        )
        if result.is_impasse:
            logger.debug(
                "Impasse conditions for %s at round %d: %s",
                ledger.counterparty_id or "negotiation", current_round, result.details,
            )
        return result

    @staticmethod
    def _price_gap(
        ledger: OfferLedger, target_price: Optional[float]
    ) -> Tuple[Optional[float], Optional[float]]:
        supplier = ledger.latest_by_source(OfferSource.SUPPLIER)
        brand = ledger.latest_by_source(OfferSource.BRAND)
        reference = brand.offer.unit_price if brand is not None else target_price
        if supplier is None or not reference:
            return None, None
        gap = abs(supplier.offer.unit_price - reference)
        return gap, gap / reference
