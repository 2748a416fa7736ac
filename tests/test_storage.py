"""
Tests for the SQLAlchemy message store and its orchestrator callbacks.
"""

import threading

import pytest

from procurement_sim.agents import (
    ScriptedBrandAgent,
    ScriptedSupplierAgent,
    scripted_brand_factory,
    scripted_supplier_factory,
)
from procurement_sim.collaborators import OfferNotice
from procurement_sim.models import MessageRecord, NegotiationStatus, OfferSource
from procurement_sim.orchestrator import NegotiationRequest, run_negotiation
from procurement_sim.storage import MessageStore
from procurement_sim.workflow import run_negotiations


@pytest.fixture
def store():
    return MessageStore.from_url("sqlite://")


class TestMessageStore:

    def test_create_is_idempotent(self, store):
        store.create_negotiation("n-1", "supplier-1")
        record = store.create_negotiation("n-1")
        assert record["counterparty_id"] == "supplier-1"
        assert record["status"] == "active"
        assert store.get_negotiation("missing") is None

    def test_messages_round_trip_in_order(self, store):
        store.save_message("n-1", MessageRecord(sender="supplier", content="b", timestamp=2.0))
        store.save_message("n-1", MessageRecord(
            sender="brand", content="a", timestamp=1.0, metadata={"actions": ["propose"]},
        ))
        messages = store.get_messages("n-1")
        assert [m.content for m in messages] == ["a", "b"]
        assert messages[0].metadata == {"actions": ["propose"]}

    def test_interventions_strictly_after(self, store):
        store.add_intervention("n-1", "Max $20", timestamp=1.0)
        store.add_intervention("n-1", "within 30 days", timestamp=2.0)
        store.add_intervention("n-2", "walk away", timestamp=3.0)

        assert [i.content for i in store.get_interventions("n-1", 0)] == ["Max $20", "within 30 days"]
        assert [i.content for i in store.get_interventions("n-1", 1.0)] == ["within 30 days"]
        assert store.get_interventions("n-1", 2.0) == []
        # interventions are not negotiation messages
        assert store.get_messages("n-1") == []

    def test_status_and_offers(self, store):
        store.save_offer("n-1", OfferNotice(
            counterparty_id="supplier-3", avg_price=18.5, lead_time=15, payment_terms="30/70",
        ))
        store.update_status("n-1", NegotiationStatus.IMPASSE, 2)

        record = store.get_negotiation("n-1")
        assert record["status"] == "impasse"
        assert record["round_count"] == 2
        assert record["counterparty_id"] == "supplier-3"
        assert record["completed_at"] is not None
        assert store.get_offers("n-1")[0].avg_price == 18.5

    def test_statistics(self, store):
        store.update_status("a", NegotiationStatus.COMPLETED, 2)
        store.update_status("b", NegotiationStatus.IMPASSE, 4)
        stats = store.get_statistics()
        assert stats["total_negotiations"] == 2
        assert stats["completion_rate"] == 0.5
        assert stats["avg_rounds"] == 3


class TestStoreCallbacks:

    @pytest.mark.asyncio
    async def test_negotiation_persisted(self, store, small_order):
        fan_in = await run_negotiations(
            small_order, ["supplier-1", "supplier-2"], scripted_brand_factory(), scripted_supplier_factory(),
            store.callbacks, quote_id="q1", max_rounds=3,
        )
        for result in fan_in.successes:
            record = store.get_negotiation(result.negotiation_id)
            assert record["status"] == "completed"
            assert record["round_count"] == result.round_count
            assert record["final_offer"]["unit_price"] == result.final_offer.unit_price
            assert [m.content for m in store.get_messages(result.negotiation_id)] == [
                m.content for m in result.messages
            ]
            assert len(store.get_offers(result.negotiation_id)) == result.round_count

    @pytest.mark.asyncio
    async def test_stored_intervention_reaches_brand(self, store, small_order):
        store.add_intervention("n-guided", "Max $16 per unit", timestamp=1.0)
        request = NegotiationRequest(
            counterparty_id="supplier-1", line_items=small_order, negotiation_id="n-guided",
            max_rounds=3, start_time=0,
        )
        result = await run_negotiation(
            request, ScriptedBrandAgent(), ScriptedSupplierAgent(), store.callbacks("n-guided"),
        )
        brand_prices = [e.offer.unit_price for e in result.history if e.source == OfferSource.BRAND]
        assert max(brand_prices) <= 16.0
        assert store.get_negotiation("n-guided")["status"] == "completed"

    @pytest.mark.asyncio
    async def test_callbacks_run_off_event_loop_thread(self, store, monkeypatch):
        loop_thread = threading.get_ident()
        threads = []
        save_message = store.save_message

        def tracking_save(nid, message):
            threads.append(threading.get_ident())
            save_message(nid, message)

        monkeypatch.setattr(store, "save_message", tracking_save)
        callbacks = store.callbacks("n-1")
        await callbacks.on_message("n-1", MessageRecord(sender="brand", content="hello", timestamp=1.0))

        assert threads and threads[0] != loop_thread
        assert [m.content for m in store.get_messages("n-1")] == ["hello"]

        store.add_intervention("n-1", "Max $20", timestamp=2.0)
        fetched = await callbacks.get_user_interventions("n-1", 1.0)
        assert [i.content for i in fetched] == ["Max $20"]
