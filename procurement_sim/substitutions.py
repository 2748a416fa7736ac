"""
Material substitution tracking for a single negotiation.

Each record moves ``pending -> accepted | rejected`` exactly once. Savings,
quality impact and lead-time change only ever count accepted records.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

import numpy as np
from pydantic import Field

from .exceptions import InvalidTransitionError
from .models import QualityImpact, WireModel

_IMPACT_LEVELS: Dict[QualityImpact, int] = {
    QualityImpact.NONE: 0,
    QualityImpact.MINOR: 1,
    QualityImpact.MODERATE: 2,
    QualityImpact.SIGNIFICANT: 3,
}


class SubstitutionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class SubstitutionProposal(WireModel):
    """An alternative material offered in exchange for a cost or lead-time change."""

    product_id: str
    original_material: str
    suggested_material: str
    cost_reduction_percent: float = Field(..., ge=0, le=50)
    quality_impact: QualityImpact = QualityImpact.NONE
    quality_justification: Optional[str] = None
    lead_time_change: Optional[int] = None


@dataclass
class SubstitutionResponse:
    timestamp: float
    reason: Optional[str] = None
    conditions: Optional[str] = None


@dataclass
class SubstitutionRecord:
    substitution_id: str
    proposal: SubstitutionProposal
    status: SubstitutionStatus = SubstitutionStatus.PENDING
    response: Optional[SubstitutionResponse] = None

    @property
    def product_id(self) -> str:
        return self.proposal.product_id

    def describe(self) -> str:
        return f"{self.proposal.original_material} → {self.proposal.suggested_material}"


class SubstitutionLedger:
    """Substitution records owned by one negotiation."""

    def __init__(self, counterparty_id: str = "", clock: Callable[[], float] = time.time):
        self.counterparty_id = counterparty_id
        self._clock = clock
        self._records: Dict[str, SubstitutionRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def propose(self, proposal: SubstitutionProposal, substitution_id: str) -> SubstitutionRecord:
        """Record a new pending substitution.

        Raises:
            InvalidTransitionError: If ``substitution_id`` is already in use.
        """
        if substitution_id in self._records:
            raise InvalidTransitionError(f"Substitution {substitution_id} already proposed")
        record = SubstitutionRecord(substitution_id=substitution_id, proposal=proposal)
        self._records[substitution_id] = record
        return record

    def accept(self, substitution_id: str, conditions: Optional[str] = None) -> Optional[SubstitutionRecord]:
        """Accept a pending substitution; ``None`` for unknown ids."""
        return self._decide(substitution_id, SubstitutionStatus.ACCEPTED, conditions=conditions)

    def reject(self, substitution_id: str, reason: Optional[str] = None) -> Optional[SubstitutionRecord]:
        """Reject a pending substitution; ``None`` for unknown ids."""
        return self._decide(substitution_id, SubstitutionStatus.REJECTED, reason=reason)

    def _decide(self, substitution_id: str, status: SubstitutionStatus, **response) -> Optional[SubstitutionRecord]:
        record = self._records.get(substitution_id)
        if record is None:
            return None
        if record.status != SubstitutionStatus.PENDING:
            raise InvalidTransitionError(
                f"Substitution {substitution_id} is already {record.status.value}"
            )
        record.status = status
        record.response = SubstitutionResponse(timestamp=self._clock(), **response)
        return record

    # ---------- Queries ----------
    def get(self, substitution_id: str) -> Optional[SubstitutionRecord]:
        return self._records.get(substitution_id)

    def all(self) -> List[SubstitutionRecord]:
        return list(self._records.values())

    def _with_status(self, status: SubstitutionStatus) -> List[SubstitutionRecord]:
        return [r for r in self._records.values() if r.status == status]

    def accepted(self) -> List[SubstitutionRecord]:
        return self._with_status(SubstitutionStatus.ACCEPTED)

    def rejected(self) -> List[SubstitutionRecord]:
        return self._with_status(SubstitutionStatus.REJECTED)

    def pending(self) -> List[SubstitutionRecord]:
        return self._with_status(SubstitutionStatus.PENDING)

    def for_product(self, product_id: str) -> List[SubstitutionRecord]:
        return [r for r in self._records.values() if r.product_id == product_id]

    def has_substitutions(self) -> bool:
        return bool(self._records)

    def has_accepted(self) -> bool:
        return bool(self.accepted())

    # ---------- Aggregates (accepted only) ----------
    def calculate_total_savings(self) -> float:
        return float(sum(r.proposal.cost_reduction_percent for r in self.accepted()))

    def calculate_quality_impact(self) -> QualityImpact:
        accepted = self.accepted()
        if not accepted:
            return QualityImpact.NONE
        average = np.mean([_IMPACT_LEVELS[r.proposal.quality_impact] for r in accepted])
        if average < 0.5:
            return QualityImpact.NONE
        if average < 1.5:
            return QualityImpact.MINOR
        if average < 2.5:
            return QualityImpact.MODERATE
        return QualityImpact.SIGNIFICANT

    def calculate_lead_time_change(self) -> int:
        return sum(r.proposal.lead_time_change or 0 for r in self.accepted())

    def summary(self) -> str:
        """Grouped accepted/rejected/pending listing for transcripts and prompts."""
        if not self._records:
            return "No material substitutions proposed."

        parts = []
        accepted = self.accepted()
        if accepted:
            lines = [
                f"  - {r.describe()} ({r.proposal.cost_reduction_percent:g}% savings, "
                f"{r.proposal.quality_impact.value} quality impact)"
                for r in accepted
            ]
            parts.append(f"Accepted ({len(accepted)}):\n" + "\n".join(lines))

        rejected = self.rejected()
        if rejected:
            lines = [
                f"  - {r.describe()} (Reason: {(r.response and r.response.reason) or 'unspecified'})"
                for r in rejected
            ]
            parts.append(f"Rejected ({len(rejected)}):\n" + "\n".join(lines))

        pending = self.pending()
        if pending:
            lines = [f"  - {r.describe()}" for r in pending]
            parts.append(f"Pending ({len(pending)}):\n" + "\n".join(lines))

        return "\n\n".join(parts)


def combined_savings(ledgers: Iterable[SubstitutionLedger]) -> float:
    """Total accepted savings across several negotiations."""
    return sum(ledger.calculate_total_savings() for ledger in ledgers)
