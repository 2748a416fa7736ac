"""
Tests for the parallel multi-supplier workflow.
"""

import pytest

from procurement_sim.agents import scripted_brand_factory, scripted_supplier_factory
from procurement_sim.collaborators import NegotiationCallbacks, no_op_callbacks
from procurement_sim.exceptions import CatalogError, NegotiationError, PersistenceError
from procurement_sim.models import NegotiationStatus, PriorityWeights
from procurement_sim.workflow import run_negotiations, run_sourcing_workflow

SUPPLIERS = ["supplier-1", "supplier-2", "supplier-3"]


class TestRunNegotiations:

    @pytest.mark.asyncio
    async def test_all_counterparties_negotiated(self, small_order):
        fan_in = await run_negotiations(
            small_order, SUPPLIERS, scripted_brand_factory(), scripted_supplier_factory(),
            quote_id="q1", max_rounds=3,
        )
        assert fan_in.failures == []
        assert [r.counterparty_id for r in fan_in.successes] == SUPPLIERS
        assert [r.negotiation_id for r in fan_in.successes] == ["q1-supplier-1", "q1-supplier-2", "q1-supplier-3"]
        assert all(r.status == NegotiationStatus.COMPLETED for r in fan_in.successes)

    @pytest.mark.asyncio
    async def test_negotiations_do_not_share_state(self, small_order):
        fan_in = await run_negotiations(
            small_order, SUPPLIERS, scripted_brand_factory(), scripted_supplier_factory(),
            quote_id="q1", max_rounds=3,
        )
        lead_times = {r.counterparty_id: r.final_offer.lead_time_days for r in fan_in.successes}
        assert lead_times == {"supplier-1": 45, "supplier-2": 25, "supplier-3": 15}
        for result in fan_in.successes:
            assert result.stats.total_offers == len(result.history)
            assert result.substitution_savings_percent <= 50

    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, small_order):
        fan_in = await run_negotiations(
            small_order, ["supplier-1", "supplier-99", "supplier-3"],
            scripted_brand_factory(), scripted_supplier_factory(), max_rounds=3,
        )
        assert [r.counterparty_id for r in fan_in.successes] == ["supplier-1", "supplier-3"]
        assert len(fan_in.failures) == 1
        counterparty_id, exc = fan_in.failures[0]
        assert counterparty_id == "supplier-99"
        assert isinstance(exc, CatalogError)

    @pytest.mark.asyncio
    async def test_persistence_failure_recorded(self, small_order):
        def callbacks_factory(negotiation_id):
            if negotiation_id.endswith("supplier-2"):
                async def on_message(nid, message):
                    raise RuntimeError("write failed")
                return NegotiationCallbacks(
                    on_message=on_message, on_status_change=no_op_callbacks().on_status_change,
                )
            return None

        fan_in = await run_negotiations(
            small_order, SUPPLIERS, scripted_brand_factory(), scripted_supplier_factory(),
            callbacks_factory, quote_id="q2", max_rounds=3,
        )
        assert len(fan_in.successes) == 2
        assert fan_in.failures[0][0] == "supplier-2"
        assert isinstance(fan_in.failures[0][1], PersistenceError)

    @pytest.mark.asyncio
    async def test_seed_makes_round_budget_reproducible(self, small_order):
        runs = [
            await run_negotiations(
                small_order, SUPPLIERS, scripted_brand_factory(), scripted_supplier_factory(), seed=7,
            )
            for _ in range(2)
        ]
        budgets = [[r.max_rounds for r in fan_in.successes] for fan_in in runs]
        assert budgets[0] == budgets[1]


class TestSourcingWorkflow:

    @pytest.mark.asyncio
    async def test_decision_over_completed_negotiations(self, small_order):
        result = await run_sourcing_workflow(
            small_order, SUPPLIERS, scripted_brand_factory(), scripted_supplier_factory(),
            priorities=PriorityWeights(quality=40, cost=30, lead_time=20, payment_terms=10),
            quote_id="q3", max_rounds=3,
        )
        assert result.quote_id == "q3"
        assert len(result.negotiations) == 3
        assert result.decision.selected_counterparty_id in SUPPLIERS
        assert result.selected.counterparty_id == result.decision.selected_counterparty_id
        assert [e.rank for e in result.decision.ranking] == [1, 2, 3]
        assert result.decision.used_fallback_reasoning is True

    @pytest.mark.asyncio
    async def test_all_failed_raises(self, small_order):
        with pytest.raises(NegotiationError):
            await run_sourcing_workflow(
                small_order, ["nope-1", "nope-2"], scripted_brand_factory(), scripted_supplier_factory(),
            )
