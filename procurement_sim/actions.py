"""
Structured action decoding at the collaborator boundary.

A collaborator answers with free text plus a list of loosely shaped raw
actions. Everything past this module works with the validated, tagged
``Action`` union and the :class:`ActionType` enum instead.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError

from .models import Offer, WireModel
from .substitutions import SubstitutionProposal

logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    """Negotiation moves a collaborator can make."""

    PROPOSE = "propose"
    COUNTER = "counter"
    ACCEPT = "accept"
    REJECT = "reject"


class SubstitutionActionType(str, Enum):
    SUGGEST = "suggest_substitution"
    ACCEPT = "accept_substitution"
    REJECT = "reject_substitution"


class OutcomeStatus(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IMPASSE = "impasse"
    ONGOING = "ongoing"


_NAME_ALIASES: Dict[str, str] = {
    "propose_offer": ActionType.PROPOSE.value,
    "counter_offer": ActionType.COUNTER.value,
    "accept_offer": ActionType.ACCEPT.value,
    "reject_offer": ActionType.REJECT.value,
}


def canonical_action_name(name: str) -> str:
    """Normalize ``propose-offer`` / ``Counter_Offer`` style names."""
    key = name.strip().lower().replace("-", "_")
    return _NAME_ALIASES.get(key, key)


# ===== RAW COLLABORATOR OUTPUT =====

class RawAction(BaseModel):
    """An unvalidated structured action as emitted by a collaborator."""

    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    ref: Optional[str] = None


class CollaboratorResponse(WireModel):
    """Text plus optional structured actions returned by a message generator."""

    text: str = ""
    structured_actions: List[RawAction] = Field(default_factory=list)


# ===== TYPED ACTIONS =====

class ProposeAction(BaseModel):
    name: Literal["propose"]
    offer: Offer
    ref: Optional[str] = Field(None, validation_alias=AliasChoices("ref", "offer_id", "offerId"))


class CounterAction(BaseModel):
    name: Literal["counter"]
    offer: Offer = Field(..., validation_alias=AliasChoices("offer", "counter_offer", "counterOffer"))
    previous_ref: Optional[str] = Field(
        None, validation_alias=AliasChoices("previous_ref", "previousRef", "previous_offer_id", "previousOfferId")
    )
    explanation: str = Field(
        "", validation_alias=AliasChoices("explanation", "changes_explanation", "changesExplanation")
    )
    ref: Optional[str] = Field(None, validation_alias=AliasChoices("ref", "offer_id", "offerId"))


class AcceptAction(BaseModel):
    name: Literal["accept"]
    ref: Optional[str] = Field(None, validation_alias=AliasChoices("ref", "offer_id", "offerId"))
    terms: Optional[Offer] = Field(
        None, validation_alias=AliasChoices("terms", "accepted_terms", "acceptedTerms")
    )


class RejectAction(BaseModel):
    name: Literal["reject"]
    ref: Optional[str] = Field(None, validation_alias=AliasChoices("ref", "offer_id", "offerId"))
    reason: str = ""
    ends_negotiation: bool = Field(
        False,
        validation_alias=AliasChoices(
            "ends_negotiation", "endsNegotiation", "is_negotiation_ended", "isNegotiationEnded"
        ),
    )


class SuggestSubstitutionAction(BaseModel):
    name: Literal["suggest_substitution"]
    proposal: SubstitutionProposal
    substitution_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("substitution_id", "substitutionId")
    )


class AcceptSubstitutionAction(BaseModel):
    name: Literal["accept_substitution"]
    substitution_id: str = Field(..., validation_alias=AliasChoices("substitution_id", "substitutionId"))
    conditions: Optional[str] = None


class RejectSubstitutionAction(BaseModel):
    name: Literal["reject_substitution"]
    substitution_id: str = Field(..., validation_alias=AliasChoices("substitution_id", "substitutionId"))
    reason: Optional[str] = None
    explanation: Optional[str] = None


Action = Annotated[
    Union[
        ProposeAction,
        CounterAction,
        AcceptAction,
        RejectAction,
        SuggestSubstitutionAction,
        AcceptSubstitutionAction,
        RejectSubstitutionAction,
    ],
    Field(discriminator="name"),
]

_ACTION_ADAPTER = TypeAdapter(Action)


def _decode_payloads(raw: RawAction) -> List[Action]:
    """Each payload that validates on its own, ``result`` before ``args``."""
    name = canonical_action_name(raw.name)
    decoded = []
    for payload in (raw.result, raw.args):
        if payload is None:
            continue
        data = {**payload, "name": name}
        if raw.ref and not any(key in data for key in ("ref", "offer_id", "offerId")):
            data["ref"] = raw.ref
        try:
            decoded.append(_ACTION_ADAPTER.validate_python(data))
        except ValidationError as exc:
            logger.debug("Payload for %s failed validation: %s", raw.name, exc.errors())
    return decoded


def decode_action(raw: RawAction) -> Optional[Action]:
    """Validate one raw action, preferring its ``result`` over its ``args``.

    Returns ``None`` when neither payload validates or the name is unknown.
    """
    decoded = _decode_payloads(raw)
    return decoded[0] if decoded else None


def _resolve_field(actions: List[Action], field_name: str, default: Any = None) -> Any:
    """First value of ``field_name`` that a payload actually supplied."""
    for action in actions:
        if field_name in action.model_fields_set and getattr(action, field_name) is not None:
            return getattr(action, field_name)
    return default


def decode_actions(response: CollaboratorResponse) -> List[Action]:
    """All valid actions of a response, in emitted order."""
    decoded = []
    for raw in response.structured_actions:
        action = decode_action(raw)
        if action is None:
            logger.debug("Dropping undecodable action %r", raw.name)
            continue
        decoded.append(action)
    return decoded


def find_action(response: Optional[CollaboratorResponse], name: Union[str, Enum]) -> Optional[RawAction]:
    """First raw action whose canonical name matches ``name``, else ``None``."""
    if response is None:
        return None
    wanted = canonical_action_name(name.value if isinstance(name, Enum) else name)
    for raw in response.structured_actions:
        if canonical_action_name(raw.name) == wanted:
            return raw
    return None


def extract_offer(response: Optional[CollaboratorResponse]) -> Optional[Offer]:
    """The offer carried by a propose (or else counter) action, if any validates."""
    for action_type in (ActionType.PROPOSE, ActionType.COUNTER):
        raw = find_action(response, action_type)
        if raw is None:
            continue
        action = decode_action(raw)
        if action is not None:
            return action.offer
    return None


@dataclass
class ExtractedOutcome:
    status: OutcomeStatus
    offer: Optional[Offer] = None
    reason: Optional[str] = None


def extract_outcome(response: Optional[CollaboratorResponse]) -> ExtractedOutcome:
    """Classify a response as accepted, rejected, impasse or ongoing."""
    raw_accept = find_action(response, ActionType.ACCEPT)
    if raw_accept is not None:
        accepts = [a for a in _decode_payloads(raw_accept) if isinstance(a, AcceptAction)]
        return ExtractedOutcome(OutcomeStatus.ACCEPTED, offer=_resolve_field(accepts, "terms"))

    raw_reject = find_action(response, ActionType.REJECT)
    if raw_reject is not None:
        rejects = [a for a in _decode_payloads(raw_reject) if isinstance(a, RejectAction)]
        ends = _resolve_field(rejects, "ends_negotiation", False)
        reason = _resolve_field(rejects, "reason") or None
        status = OutcomeStatus.IMPASSE if ends else OutcomeStatus.REJECTED
        return ExtractedOutcome(status, reason=reason)

    return ExtractedOutcome(OutcomeStatus.ONGOING)


def primary_action(response: Optional[CollaboratorResponse]) -> Optional[ActionType]:
    """The most decisive negotiation move present: accept > reject > counter > propose."""
    for action_type in (ActionType.ACCEPT, ActionType.REJECT, ActionType.COUNTER, ActionType.PROPOSE):
        if find_action(response, action_type) is not None:
            return action_type
    return None


def substitution_actions(response: Optional[CollaboratorResponse]) -> List[Action]:
    if response is None:
        return []
    kinds = (SuggestSubstitutionAction, AcceptSubstitutionAction, RejectSubstitutionAction)
    return [a for a in decode_actions(response) if isinstance(a, kinds)]


# ===== VALIDATION =====

class OfferConstraints(WireModel):
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    max_lead_time: Optional[int] = None
    allowed_payment_terms: Optional[List[str]] = None


@dataclass
class OfferValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def validate_offer(offer: Offer, constraints: OfferConstraints) -> OfferValidationResult:
    """Check an offer against every constraint, collecting all violations."""
    errors = []
    if constraints.min_price is not None and offer.unit_price < constraints.min_price:
        errors.append(f"Unit price ${offer.unit_price:g} below minimum ${constraints.min_price:g}")
    if constraints.max_price is not None and offer.unit_price > constraints.max_price:
        errors.append(f"Unit price ${offer.unit_price:g} above maximum ${constraints.max_price:g}")
    if constraints.max_lead_time is not None and offer.lead_time_days > constraints.max_lead_time:
        errors.append(
            f"Lead time {offer.lead_time_days} days exceeds maximum {constraints.max_lead_time} days"
        )
    if (
        constraints.allowed_payment_terms is not None
        and offer.payment_terms not in constraints.allowed_payment_terms
    ):
        errors.append(
            f'Payment terms "{offer.payment_terms}" not in allowed list: '
            f'{", ".join(constraints.allowed_payment_terms)}'
        )
    return OfferValidationResult(valid=not errors, errors=errors)
