"""
Routes per-token market-channel messages into per-market PriceState updates.
Keeps a small top-of-book per token so a leg price can be derived from
book snapshots and level deltas.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sortedcontainers import SortedDict

from .state import PriceState

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..connector.rest_client import MarketDescriptor
    from ..connector.ws_client import BestBidAsk, BookUpdate, LastTradePrice, PriceChange
    from ..monitor import Logger


@dataclass
class BookSide:
    """One side of a token book (bids or asks)."""
    is_bid: bool
    levels: SortedDict = field(default_factory=SortedDict)

    def __post_init__(self):
        # Bids sorted descending (highest first), asks ascending (lowest first)
        if self.is_bid:
            self.levels = SortedDict(lambda x: -x)
        else:
            self.levels = SortedDict()

    def update(self, price: Decimal, size: Decimal) -> None:
        """Update a price level. Size of 0 removes the level."""
        if size <= 0:
            self.levels.pop(price, None)
        else:
            self.levels[price] = size

    def set_snapshot(self, levels: list[tuple[Decimal, Decimal]]) -> None:
        self.levels.clear()
        for price, size in levels:
            if size > 0:
                self.levels[price] = size

    @property
    def best_price(self) -> Optional[Decimal]:
        if not self.levels:
            return None
        return self.levels.keys()[0]


@dataclass
class TokenBook:
    """Top-of-book for a single outcome token."""
    token_id: str
    bids: BookSide = field(default_factory=lambda: BookSide(is_bid=True))
    asks: BookSide = field(default_factory=lambda: BookSide(is_bid=False))
    last_update: float = 0

    def set_snapshot(
        self,
        bids: list[tuple[Decimal, Decimal]],
        asks: list[tuple[Decimal, Decimal]],
    ) -> None:
        self.bids.set_snapshot(bids)
        self.asks.set_snapshot(asks)
        self.last_update = time.time()

    def update_level(self, side: str, price: Decimal, size: Decimal) -> None:
        if side.upper() == "BUY":
            self.bids.update(price, size)
        else:
            self.asks.update(price, size)
        self.last_update = time.time()

    @property
    def best_bid(self) -> Optional[Decimal]:
        return self.bids.best_price

    @property
    def best_ask(self) -> Optional[Decimal]:
        return self.asks.best_price

    @property
    def price(self) -> Optional[Decimal]:
        """Midpoint, or whichever side exists when the book is one-sided."""
        return leg_price(self.best_bid, self.best_ask)


def leg_price(best_bid: Optional[Decimal], best_ask: Optional[Decimal]) -> Optional[Decimal]:
    """Midpoint of bid/ask; falls back to the side that is present."""
    if best_bid and best_ask:
        return (best_bid + best_ask) / 2
    return best_bid or best_ask or None


@dataclass
class MarketTokens:
    market_id: str
    yes_token_id: str
    no_token_id: str


class FeedRouter:
    """
    Maps token ids to markets and converts feed messages into partial
    PriceState updates for one leg at a time.

    Messages for tokens that were never registered are ignored.
    """

    def __init__(self, price_state: PriceState, logger: Optional["Logger"] = None):
        self.price_state = price_state
        self.logger = logger

        self._markets: dict[str, MarketTokens] = {}
        self._token_to_market: dict[str, str] = {}  # token_id -> market_id
        self._books: dict[str, TokenBook] = {}
        self._ignored = 0

    # === Catalog ===

    def register(self, market: "MarketDescriptor") -> bool:
        """
        Track a market from the catalog.

        The first registration stores the token ids in PriceState and seeds
        both prices when the catalog supplied them. Later registrations of
        the same market leave live prices untouched. Returns True if new.
        """
        if market.market_id in self._markets:
            return False

        self._markets[market.market_id] = MarketTokens(
            market_id=market.market_id,
            yes_token_id=market.yes_token_id,
            no_token_id=market.no_token_id,
        )
        for token_id in (market.yes_token_id, market.no_token_id):
            self._token_to_market[token_id] = market.market_id
            self._books[token_id] = TokenBook(token_id)

        seed = {
            "yes_token_id": market.yes_token_id,
            "no_token_id": market.no_token_id,
        }
        if market.yes_price is not None and market.no_price is not None:
            seed["yes_price"] = market.yes_price
            seed["no_price"] = market.no_price

        self.price_state.update(market.market_id, **seed)
        return True

    def get_all_token_ids(self) -> list[str]:
        return list(self._token_to_market.keys())

    def get_market_id(self, token_id: str) -> Optional[str]:
        return self._token_to_market.get(token_id)

    @property
    def market_count(self) -> int:
        return len(self._markets)

    @property
    def ignored_messages(self) -> int:
        """Messages dropped because their token is not tracked."""
        return self._ignored

    # === Feed messages ===

    def on_book(self, update: "BookUpdate") -> None:
        book = self._books.get(update.asset_id)
        if book is None:
            self._ignore(update.asset_id)
            return
        book.set_snapshot(update.bids, update.asks)
        self._publish(update.asset_id, book.price)

    def on_price_change(self, update: "PriceChange") -> None:
        book = self._books.get(update.asset_id)
        if book is None:
            self._ignore(update.asset_id)
            return
        book.update_level(update.side, update.price, update.size)

        # Prefer the venue's own top-of-book when the message carries it
        price = leg_price(update.best_bid, update.best_ask) or book.price
        self._publish(update.asset_id, price)

    def on_best_bid_ask(self, update: "BestBidAsk") -> None:
        if update.asset_id not in self._books:
            self._ignore(update.asset_id)
            return
        self._publish(update.asset_id, leg_price(update.best_bid, update.best_ask))

    def on_last_trade_price(self, update: "LastTradePrice") -> None:
        if update.asset_id not in self._books:
            self._ignore(update.asset_id)
            return
        self._publish(update.asset_id, update.price)

    def _publish(self, token_id: str, price: Optional[Decimal]) -> None:
        if price is None:
            return

        market = self._markets[self._token_to_market[token_id]]
        if token_id == market.yes_token_id:
            self.price_state.update(market.market_id, yes_price=price, yes_token_id=token_id)
        else:
            self.price_state.update(market.market_id, no_price=price, no_token_id=token_id)

    def _ignore(self, token_id: str) -> None:
        self._ignored += 1
        if self.logger:
            self.logger.debug("unknown_token", asset_id=token_id[:16])
