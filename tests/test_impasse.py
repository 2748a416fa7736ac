"""
Unit tests for impasse detection.
"""

import pytest

from procurement_sim.config import Settings
from procurement_sim.impasse import (
    REASON_EXPLICIT_REJECTION,
    REASON_LEAD_TIME,
    REASON_MAX_ROUNDS,
    REASON_NO_PROGRESS,
    REASON_PRICE_GAP,
    ImpasseConfig,
    ImpasseEvaluator,
)
from procurement_sim.models import OfferSource


class TestImpasseEvaluator:

    def test_no_impasse_on_healthy_negotiation(self, haggling_ledger):
        result = ImpasseEvaluator().detect(2, haggling_ledger)
        assert result.is_impasse is False
        assert result.primary_reason is None
        assert result.details == ""

    def test_empty_ledger_is_not_an_impasse(self, ledger):
        result = ImpasseEvaluator().detect(0, ledger)
        assert result.is_impasse is False
        assert result.conditions.price_gap_too_large is False

    def test_explicit_rejection_wins_priority(self, ledger, offer_factory):
        ledger.add_offer(0, OfferSource.BRAND, offer_factory(10.0))
        ledger.add_offer(0, OfferSource.SUPPLIER, offer_factory(30.0))
        result = ImpasseEvaluator().detect(12, ledger, explicit_rejection=True)

        assert result.conditions.explicit_rejection
        assert result.conditions.price_gap_too_large
        assert result.conditions.max_rounds_reached
        assert result.primary_reason == REASON_EXPLICIT_REJECTION
        assert result.details.startswith("Negotiation explicitly ended by one party.")

    def test_price_gap_relative_to_brand_price(self, ledger, offer_factory):
        ledger.add_offer(0, OfferSource.BRAND, offer_factory(20.0))
        ledger.add_offer(0, OfferSource.SUPPLIER, offer_factory(26.0))
        result = ImpasseEvaluator().detect(0, ledger)

        assert result.primary_reason == REASON_PRICE_GAP
        assert "$6.00 (30.0%)" in result.details
        assert "threshold of 25%" in result.details

    def test_price_gap_at_threshold_is_not_an_impasse(self, ledger, offer_factory):
        ledger.add_offer(0, OfferSource.BRAND, offer_factory(20.0))
        ledger.add_offer(0, OfferSource.SUPPLIER, offer_factory(25.0))
        assert ImpasseEvaluator().detect(0, ledger).conditions.price_gap_too_large is False

    def test_price_gap_threshold_boundaries(self, ledger, offer_factory):
        ledger.add_offer(0, OfferSource.BRAND, offer_factory(25.0))
        ledger.add_offer(0, OfferSource.SUPPLIER, offer_factory(30.0))

        assert ledger.calculate_price_gap_percent() == pytest.approx(16.67, abs=0.01)
        loose = ImpasseEvaluator(price_gap_threshold=0.20).detect(0, ledger)
        tight = ImpasseEvaluator(price_gap_threshold=0.15).detect(0, ledger)
        assert loose.conditions.price_gap_too_large is False
        assert tight.conditions.price_gap_too_large is True
        assert tight.primary_reason == REASON_PRICE_GAP

    def test_price_gap_falls_back_to_target_price(self, ledger, offer_factory):
        ledger.add_offer(0, OfferSource.SUPPLIER, offer_factory(30.0))
        result = ImpasseEvaluator().detect(0, ledger, target_price=20.0)
        assert result.conditions.price_gap_too_large is True

        result = ImpasseEvaluator().detect(0, ledger)
        assert result.conditions.price_gap_too_large is False

    def test_no_progress(self, ledger, offer_factory):
        for round_num in range(3):
            ledger.add_offer(round_num, OfferSource.BRAND, offer_factory(29.0))
            ledger.add_offer(round_num, OfferSource.SUPPLIER, offer_factory(30.0))
        result = ImpasseEvaluator().detect(2, ledger)
        assert result.primary_reason == REASON_NO_PROGRESS
        assert "No price improvement in last 3 rounds." in result.details

    def test_max_rounds_is_inclusive(self, haggling_ledger):
        evaluator = ImpasseEvaluator(max_rounds=3)
        assert evaluator.detect(2, haggling_ledger).is_impasse is False
        result = evaluator.detect(3, haggling_ledger)
        assert result.primary_reason == REASON_MAX_ROUNDS
        assert "Maximum 3 rounds reached without agreement." in result.details

    def test_lead_time_uses_latest_offer(self, ledger, offer_factory):
        ledger.add_offer(0, OfferSource.BRAND, offer_factory(25.0, lead_time=30))
        ledger.add_offer(0, OfferSource.SUPPLIER, offer_factory(26.0, lead_time=75))
        result = ImpasseEvaluator().detect(0, ledger)
        assert result.primary_reason == REASON_LEAD_TIME
        assert "Lead time of 75 days exceeds 60-day limit." in result.details

    def test_details_join_all_triggered_clauses(self, ledger, offer_factory):
        ledger.add_offer(0, OfferSource.BRAND, offer_factory(10.0))
        ledger.add_offer(0, OfferSource.SUPPLIER, offer_factory(30.0, lead_time=90))
        result = ImpasseEvaluator(max_rounds=1).detect(1, ledger)
        clauses = result.details.split(". ")
        assert len(clauses) == 3
        assert result.primary_reason == REASON_PRICE_GAP

    def test_overrides_merge_with_config(self):
        base = ImpasseConfig(max_rounds=4)
        evaluator = ImpasseEvaluator(base, price_gap_threshold=0.5)
        assert evaluator.config.max_rounds == 4
        assert evaluator.config.price_gap_threshold == 0.5

    def test_from_settings(self):
        evaluator = ImpasseEvaluator.from_settings(Settings())
        assert evaluator.config.progress_window_size == Settings.IMPASSE_PROGRESS_WINDOW

    def test_invalid_threshold_rejected(self):
        with pytest.raises(ValueError):
            ImpasseConfig(price_gap_threshold=0)
