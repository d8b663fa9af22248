"""
Per-market YES/NO price snapshots.
Merges partial ticks into the last-known snapshot and fans out every change.
"""

import time
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Optional

from ..events import Subscribers, Unsubscribe

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..monitor import Logger


PRICE_FIELDS = ("yes_price", "no_price")
TOKEN_FIELDS = ("yes_token_id", "no_token_id")


@dataclass(frozen=True)
class PriceSnapshot:
    """Best-known YES/NO prices for one binary market."""
    market_id: str
    yes_price: Optional[Decimal] = None
    no_price: Optional[Decimal] = None
    yes_token_id: Optional[str] = None
    no_token_id: Optional[str] = None
    updated_at: float = 0

    @property
    def is_complete(self) -> bool:
        """Both sides have reported a finite price."""
        return _is_price(self.yes_price) and _is_price(self.no_price)

    @property
    def combined_price(self) -> Optional[Decimal]:
        """YES + NO, or None while incomplete."""
        if not self.is_complete:
            return None
        return self.yes_price + self.no_price

    @property
    def age_seconds(self) -> float:
        """Seconds since last update."""
        if self.updated_at == 0:
            return float("inf")
        return time.time() - self.updated_at


def _is_price(value: Any) -> bool:
    return isinstance(value, Decimal) and value.is_finite()


def to_price(value: Any) -> Decimal:
    """Coerce a wire or float price to Decimal."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid price: {value!r}")


class PriceState:
    """
    Snapshot store keyed by market id.

    All mutation goes through update(). Observers receive
    (market_id, snapshot) with the full merged snapshot after every update.
    """

    def __init__(self, logger: Optional["Logger"] = None):
        self._prices: dict[str, PriceSnapshot] = {}
        self._observers = Subscribers("price_update", logger)

    def update(self, market_id: str, **fields: Any) -> PriceSnapshot:
        """
        Merge a partial update into the stored snapshot.

        Accepts any subset of yes_price, no_price, yes_token_id, no_token_id.
        Fields that are omitted or None keep their previous value.
        """
        unknown = set(fields) - set(PRICE_FIELDS) - set(TOKEN_FIELDS)
        if unknown:
            raise ValueError(f"Unknown price fields: {sorted(unknown)}")

        changes: dict[str, Any] = {}
        for name, value in fields.items():
            if value is None:
                continue
            changes[name] = to_price(value) if name in PRICE_FIELDS else str(value)

        previous = self._prices.get(market_id) or PriceSnapshot(market_id=market_id)
        snapshot = replace(previous, updated_at=time.time(), **changes)
        self._prices[market_id] = snapshot

        self._observers.publish(market_id, snapshot)
        return snapshot

    def get(self, market_id: str) -> Optional[PriceSnapshot]:
        return self._prices.get(market_id)

    def list_all(self) -> list[PriceSnapshot]:
        return list(self._prices.values())

    def is_complete(self, market_id: str) -> bool:
        """Check if we have both YES and NO prices for a market."""
        snapshot = self._prices.get(market_id)
        return snapshot is not None and snapshot.is_complete

    def on_update(
        self,
        handler: Callable[[str, PriceSnapshot], None],
    ) -> Unsubscribe:
        """Register an observer. Returns its unsubscribe handle."""
        return self._observers.subscribe(handler)

    def __len__(self) -> int:
        return len(self._prices)

    def __contains__(self, market_id: object) -> bool:
        return market_id in self._prices
