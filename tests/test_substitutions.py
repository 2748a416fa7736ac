"""
Unit tests for material substitution tracking.
"""

import pytest

from procurement_sim.exceptions import InvalidTransitionError
from procurement_sim.models import QualityImpact
from procurement_sim.substitutions import (
    SubstitutionLedger,
    SubstitutionProposal,
    SubstitutionStatus,
    combined_savings,
)


def proposal(product_id="FSH019", savings=35.0, impact=QualityImpact.MINOR, lead_time_change=None):
    return SubstitutionProposal(
        product_id=product_id,
        original_material="Full-Grain Leather Upper",
        suggested_material="Premium PU Leather",
        cost_reduction_percent=savings,
        quality_impact=impact,
        lead_time_change=lead_time_change,
    )


@pytest.fixture
def subs(clock):
    return SubstitutionLedger("supplier-1", clock=clock)


class TestLifecycle:

    def test_propose_starts_pending(self, subs):
        record = subs.propose(proposal(), "sub-1")
        assert record.status == SubstitutionStatus.PENDING
        assert record.response is None
        assert subs.pending() == [record]
        assert subs.has_substitutions()
        assert not subs.has_accepted()

    def test_duplicate_id_rejected(self, subs):
        subs.propose(proposal(), "sub-1")
        with pytest.raises(InvalidTransitionError):
            subs.propose(proposal(), "sub-1")

    def test_accept_records_response(self, subs):
        subs.propose(proposal(), "sub-1")
        record = subs.accept("sub-1", conditions="samples first")
        assert record.status == SubstitutionStatus.ACCEPTED
        assert record.response.conditions == "samples first"
        assert record.response.timestamp > 0

    def test_accepted_record_keeps_original_proposal(self, subs):
        original = proposal(lead_time_change=-5)
        subs.propose(original, "sub-1")
        subs.accept("sub-1")

        accepted = subs.accepted()
        assert len(accepted) == 1
        assert accepted[0].proposal == original
        assert accepted[0].substitution_id == "sub-1"

    def test_transition_happens_once(self, subs):
        subs.propose(proposal(), "sub-1")
        subs.reject("sub-1", reason="quality_concerns")
        with pytest.raises(InvalidTransitionError):
            subs.accept("sub-1")
        with pytest.raises(InvalidTransitionError):
            subs.reject("sub-1")
        assert subs.get("sub-1").status == SubstitutionStatus.REJECTED

    def test_unknown_id_returns_none(self, subs):
        assert subs.accept("missing") is None
        assert subs.reject("missing") is None

    def test_for_product(self, subs):
        subs.propose(proposal("FSH019"), "a")
        subs.propose(proposal("FSH013"), "b")
        assert [r.substitution_id for r in subs.for_product("FSH013")] == ["b"]

    def test_proposal_accepts_camel_case(self):
        p = SubstitutionProposal.model_validate({
            "productId": "FSH013",
            "originalMaterial": "A",
            "suggestedMaterial": "B",
            "costReductionPercent": 10,
            "qualityImpact": "moderate",
        })
        assert p.quality_impact is QualityImpact.MODERATE

    def test_savings_capped_at_fifty_percent(self):
        with pytest.raises(ValueError):
            proposal(savings=60)


class TestAggregates:

    def test_only_accepted_count(self, subs):
        subs.propose(proposal(savings=20, lead_time_change=-5), "a")
        subs.propose(proposal(savings=15, lead_time_change=3), "b")
        subs.propose(proposal(savings=10, impact=QualityImpact.SIGNIFICANT), "c")
        subs.accept("a")
        subs.accept("b")
        subs.reject("c")

        assert subs.calculate_total_savings() == 35.0
        assert subs.calculate_lead_time_change() == -2
        assert subs.calculate_quality_impact() == QualityImpact.MINOR

    def test_quality_impact_bands(self, subs):
        subs.propose(proposal(impact=QualityImpact.NONE), "a")
        subs.propose(proposal(impact=QualityImpact.SIGNIFICANT), "b")
        subs.accept("a")
        subs.accept("b")
        # mean 1.5 sits in the moderate band
        assert subs.calculate_quality_impact() == QualityImpact.MODERATE

    def test_empty_aggregates(self, subs):
        assert subs.calculate_total_savings() == 0.0
        assert subs.calculate_quality_impact() == QualityImpact.NONE
        assert subs.calculate_lead_time_change() == 0

    def test_combined_savings(self, clock):
        first, second = SubstitutionLedger(clock=clock), SubstitutionLedger(clock=clock)
        first.propose(proposal(savings=20), "a")
        first.accept("a")
        second.propose(proposal(savings=15), "b")
        second.accept("b")
        assert combined_savings([first, second]) == 35.0


class TestSummary:

    def test_no_substitutions(self, subs):
        assert subs.summary() == "No material substitutions proposed."

    def test_grouped_listing(self, subs):
        subs.propose(proposal(savings=35), "a")
        subs.propose(proposal(savings=20), "b")
        subs.propose(proposal(savings=10), "c")
        subs.accept("a")
        subs.reject("b", reason="quality_concerns")

        summary = subs.summary()
        assert summary.startswith("Accepted (1):")
        assert "Full-Grain Leather Upper → Premium PU Leather (35% savings, minor quality impact)" in summary
        assert "Rejected (1):" in summary
        assert "(Reason: quality_concerns)" in summary
        assert "Pending (1):" in summary
