"""
Unit tests for structured action decoding and offer validation.
"""

from procurement_sim.actions import (
    AcceptAction,
    ActionType,
    CollaboratorResponse,
    CounterAction,
    OfferConstraints,
    OutcomeStatus,
    RawAction,
    RejectAction,
    SuggestSubstitutionAction,
    canonical_action_name,
    decode_action,
    decode_actions,
    extract_offer,
    extract_outcome,
    find_action,
    primary_action,
    substitution_actions,
    validate_offer,
)
from procurement_sim.models import Offer

OFFER = {"unit_price": 22.5, "lead_time_days": 30, "payment_terms": "30/70"}
CAMEL_OFFER = {"unitPrice": 22.5, "leadTimeDays": 30, "paymentTerms": "30/70"}


def response(*actions, text="..."):
    return CollaboratorResponse(text=text, structured_actions=list(actions))


class TestDecoding:

    def test_canonical_names(self):
        assert canonical_action_name("propose-offer") == "propose"
        assert canonical_action_name("Counter_Offer") == "counter"
        assert canonical_action_name("accept") == "accept"

    def test_propose_with_camel_case_offer(self):
        action = decode_action(RawAction(name="propose-offer", args={"offer": CAMEL_OFFER}, ref="o-1"))
        assert action.name == "propose"
        assert action.offer.unit_price == 22.5
        assert action.ref == "o-1"

    def test_result_preferred_over_args(self):
        raw = RawAction(
            name="counter",
            args={"offer": {**OFFER, "unit_price": 99.0}},
            result={"counterOffer": OFFER, "changesExplanation": "met halfway", "previousOfferId": "o-1"},
        )
        action = decode_action(raw)
        assert isinstance(action, CounterAction)
        assert action.offer.unit_price == 22.5
        assert action.explanation == "met halfway"
        assert action.previous_ref == "o-1"

    def test_falls_back_to_args_when_result_invalid(self):
        raw = RawAction(name="propose", args={"offer": OFFER}, result={"offer": {"unit_price": -1}})
        assert decode_action(raw).offer.unit_price == 22.5

    def test_payload_ref_not_overwritten(self):
        action = decode_action(RawAction(name="accept", args={"offerId": "o-2"}, ref="raw-ref"))
        assert isinstance(action, AcceptAction)
        assert action.ref == "o-2"

    def test_unknown_and_invalid_actions_dropped(self):
        resp = response(
            RawAction(name="dance"),
            RawAction(name="propose", args={"offer": {"unit_price": "free"}}),
            RawAction(name="reject", args={"isNegotiationEnded": True, "reason": "too high"}),
        )
        decoded = decode_actions(resp)
        assert len(decoded) == 1
        assert isinstance(decoded[0], RejectAction)
        assert decoded[0].ends_negotiation is True

    def test_substitution_actions(self):
        resp = response(
            RawAction(name="suggest_substitution", args={
                "proposal": {
                    "productId": "FSH019", "originalMaterial": "Leather",
                    "suggestedMaterial": "PU", "costReductionPercent": 20,
                },
                "substitutionId": "s-1",
            }),
            RawAction(name="accept_substitution", args={"substitution_id": "s-0"}),
            RawAction(name="propose", args={"offer": OFFER}),
        )
        subs = substitution_actions(resp)
        assert len(subs) == 2
        assert isinstance(subs[0], SuggestSubstitutionAction)
        assert subs[0].substitution_id == "s-1"
        assert substitution_actions(None) == []


class TestExtraction:

    def test_find_action(self):
        resp = response(RawAction(name="counter-offer", args={"offer": OFFER}))
        assert find_action(resp, ActionType.COUNTER) is not None
        assert find_action(resp, "propose") is None
        assert find_action(None, "propose") is None

    def test_extract_offer_prefers_propose(self):
        resp = response(
            RawAction(name="counter", args={"offer": {**OFFER, "unit_price": 30.0}}),
            RawAction(name="propose", args={"offer": OFFER}),
        )
        assert extract_offer(resp).unit_price == 22.5

    def test_extract_offer_absent(self):
        assert extract_offer(response()) is None
        assert extract_offer(None) is None

    def test_outcome_accept_with_terms(self):
        outcome = extract_outcome(response(RawAction(name="accept", args={"acceptedTerms": CAMEL_OFFER})))
        assert outcome.status == OutcomeStatus.ACCEPTED
        assert outcome.offer == Offer(**OFFER)

    def test_outcome_accept_without_terms(self):
        outcome = extract_outcome(response(RawAction(name="accept-offer")))
        assert outcome.status == OutcomeStatus.ACCEPTED
        assert outcome.offer is None

    def test_outcome_reject_vs_impasse(self):
        rejected = extract_outcome(response(RawAction(name="reject", args={"reason": "price"})))
        assert rejected.status == OutcomeStatus.REJECTED
        assert rejected.reason == "price"

        ended = extract_outcome(response(RawAction(name="reject", args={"ends_negotiation": True})))
        assert ended.status == OutcomeStatus.IMPASSE

    def test_outcome_accept_terms_only_in_args(self):
        raw = RawAction(name="accept-offer", args={"acceptedTerms": CAMEL_OFFER}, result={"status": "accepted"})
        outcome = extract_outcome(response(raw))
        assert outcome.status == OutcomeStatus.ACCEPTED
        assert outcome.offer == Offer(**OFFER)

    def test_outcome_accept_result_terms_win(self):
        raw = RawAction(
            name="accept",
            args={"terms": {**OFFER, "unit_price": 99.0}},
            result={"acceptedTerms": CAMEL_OFFER},
        )
        assert extract_outcome(response(raw)).offer.unit_price == 22.5

    def test_outcome_reject_end_flag_only_in_args(self):
        raw = RawAction(
            name="reject-offer",
            args={"reason": "too high", "isNegotiationEnded": True},
            result={"reason": "too high"},
        )
        outcome = extract_outcome(response(raw))
        assert outcome.status == OutcomeStatus.IMPASSE
        assert outcome.reason == "too high"

    def test_outcome_reject_reason_from_result(self):
        raw = RawAction(name="reject", args={"reason": "draft"}, result={"reason": "final", "endsNegotiation": False})
        outcome = extract_outcome(response(raw))
        assert outcome.status == OutcomeStatus.REJECTED
        assert outcome.reason == "final"

    def test_outcome_ongoing(self):
        resp = response(RawAction(name="propose", args={"offer": OFFER}))
        assert extract_outcome(resp).status == OutcomeStatus.ONGOING

    def test_primary_action_ranking(self):
        resp = response(
            RawAction(name="propose", args={"offer": OFFER}),
            RawAction(name="reject"),
            RawAction(name="accept"),
        )
        assert primary_action(resp) == ActionType.ACCEPT
        assert primary_action(response(RawAction(name="propose"))) == ActionType.PROPOSE
        assert primary_action(response()) is None


class TestValidateOffer:

    def test_valid(self):
        result = validate_offer(Offer(**OFFER), OfferConstraints(min_price=20, max_price=25))
        assert result.valid
        assert result.errors == []

    def test_collects_every_violation(self):
        offer = Offer(unit_price=18.5, lead_time_days=45, payment_terms="100")
        constraints = OfferConstraints(
            min_price=20, max_lead_time=30, allowed_payment_terms=["30/70", "50/50"]
        )
        result = validate_offer(offer, constraints)
        assert not result.valid
        assert result.errors == [
            "Unit price $18.5 below minimum $20",
            "Lead time 45 days exceeds maximum 30 days",
            'Payment terms "100" not in allowed list: 30/70, 50/50',
        ]

    def test_above_maximum(self):
        result = validate_offer(Offer(**OFFER), OfferConstraints(maxPrice=20))
        assert result.errors == ["Unit price $22.5 above maximum $20"]
