"""
Append-only offer history for a single negotiation, with progression and
stagnation analysis used by the impasse evaluator and the orchestrator.
"""

import time
from typing import Callable, Iterator, List, Optional, Union

import numpy as np

from .models import LedgerStats, Offer, OfferHistoryEntry, OfferSource


class OfferLedger:
    """Offer history owned by exactly one negotiation.

    Entries are kept in insertion order and round numbers never decrease.
    """

    def __init__(self, counterparty_id: str = "", clock: Callable[[], float] = time.time):
        self.counterparty_id = counterparty_id
        self._clock = clock
        self._history: List[OfferHistoryEntry] = []

    def __len__(self) -> int:
        return len(self._history)

    def __iter__(self) -> Iterator[OfferHistoryEntry]:
        return iter(list(self._history))

    @property
    def history(self) -> List[OfferHistoryEntry]:
        return list(self._history)

    # ---------- Recording ----------
    def add_offer(
        self,
        round_num: int,
        source: Union[OfferSource, str],
        offer: Offer,
        action_ref: Optional[str] = None,
    ) -> OfferHistoryEntry:
        """Append an offer stamped with the ledger clock.

        Raises:
            ValueError: If ``round_num`` is negative or lower than the round
                of the previous entry.
        """
        if round_num < 0:
            raise ValueError("round_num must be non-negative")
        if self._history and round_num < self._history[-1].round_num:
            raise ValueError(
                f"round {round_num} recorded after round {self._history[-1].round_num}"
            )
        entry = OfferHistoryEntry(
            round_num=round_num,
            timestamp=self._clock(),
            source=OfferSource(source),
            offer=offer,
            action_ref=action_ref,
        )
        self._history.append(entry)
        return entry

    # ---------- Queries ----------
    def latest(self) -> Optional[OfferHistoryEntry]:
        return self._history[-1] if self._history else None

    def first(self) -> Optional[OfferHistoryEntry]:
        return self._history[0] if self._history else None

    def all_by_source(self, source: Union[OfferSource, str]) -> List[OfferHistoryEntry]:
        source = OfferSource(source)
        return [entry for entry in self._history if entry.source == source]

    def latest_by_source(self, source: Union[OfferSource, str]) -> Optional[OfferHistoryEntry]:
        source = OfferSource(source)
        for entry in reversed(self._history):
            if entry.source == source:
                return entry
        return None

    def offers_for_round(self, round_num: int) -> List[OfferHistoryEntry]:
        return [entry for entry in self._history if entry.round_num == round_num]

    def price_progression(self, source: Optional[Union[OfferSource, str]] = None) -> List[float]:
        """Unit prices in insertion order, optionally restricted to one side."""
        entries = self._history if source is None else self.all_by_source(source)
        return [entry.offer.unit_price for entry in entries]

    def _recent_supplier_prices(self, window_size: int) -> List[float]:
        return self.price_progression(OfferSource.SUPPLIER)[-window_size:]

    # ---------- Analysis ----------
    def has_price_improved(self, window_size: int = 3) -> bool:
        """Whether the supplier conceded on price within the last window.

        Returns True while fewer than ``window_size`` supplier offers exist,
        otherwise True iff any adjacent pair in the window strictly drops.
        """
        supplier_prices = self.price_progression(OfferSource.SUPPLIER)
        if len(supplier_prices) < window_size:
            return True
        recent = supplier_prices[-window_size:]
        return any(later < earlier for earlier, later in zip(recent, recent[1:]))

    def is_stalled(self, window_size: int = 3, tolerance_percent: float = 1.0) -> bool:
        """Whether the last ``window_size`` supplier prices sit within a band.

        The band is ``(max - min) / min`` expressed in percent. Sparse
        histories (fewer than ``window_size`` supplier offers) are never
        considered stalled.
        """
        recent = self._recent_supplier_prices(window_size)
        if window_size <= 0 or len(recent) < window_size:
            return False
        low, high = min(recent), max(recent)
        spread_percent = (high - low) / low * 100
        return spread_percent <= tolerance_percent

    def calculate_price_gap(self) -> Optional[float]:
        """Absolute difference between the latest brand and supplier prices."""
        brand = self.latest_by_source(OfferSource.BRAND)
        supplier = self.latest_by_source(OfferSource.SUPPLIER)
        if brand is None or supplier is None:
            return None
        return abs(supplier.offer.unit_price - brand.offer.unit_price)

    def calculate_price_gap_percent(self) -> Optional[float]:
        """Price gap as a percentage of the latest supplier price."""
        gap = self.calculate_price_gap()
        if gap is None:
            return None
        supplier = self.latest_by_source(OfferSource.SUPPLIER)
        return gap / supplier.offer.unit_price * 100

    def stats(self) -> LedgerStats:
        if not self._history:
            return LedgerStats()

        prices = np.array(self.price_progression(), dtype=float)
        supplier_prices = self.price_progression(OfferSource.SUPPLIER)
        improvement = 0.0
        if supplier_prices:
            first, last = supplier_prices[0], supplier_prices[-1]
            improvement = (first - last) / first * 100

        return LedgerStats(
            total_rounds=max(entry.round_num for entry in self._history) + 1,
            total_offers=len(self._history),
            price_min=float(prices.min()),
            price_max=float(prices.max()),
            average_price=float(prices.mean()),
            price_improvement_percent=improvement,
            final_offer=self._history[-1].offer,
        )
