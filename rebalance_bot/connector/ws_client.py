"""
WebSocket client for the Polymarket CLOB market channel.
Parses per-token price messages and reconnects with bounded exponential backoff.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed


class WSMessageType(Enum):
    """Market channel message types."""
    BOOK = "book"
    PRICE_CHANGE = "price_change"
    LAST_TRADE_PRICE = "last_trade_price"
    BEST_BID_ASK = "best_bid_ask"
    TICK_SIZE_CHANGE = "tick_size_change"


@dataclass
class BookUpdate:
    """Full orderbook snapshot for one token."""
    asset_id: str
    market: str
    bids: list[tuple[Decimal, Decimal]]  # (price, size)
    asks: list[tuple[Decimal, Decimal]]
    timestamp: int


@dataclass
class PriceChange:
    """Single price level change for one token."""
    asset_id: str
    market: str
    price: Decimal
    size: Decimal
    side: str
    best_bid: Optional[Decimal]
    best_ask: Optional[Decimal]
    timestamp: int


@dataclass
class BestBidAsk:
    """Top-of-book update for one token."""
    asset_id: str
    market: str
    best_bid: Optional[Decimal]
    best_ask: Optional[Decimal]
    timestamp: int


@dataclass
class LastTradePrice:
    """Last traded price for one token."""
    asset_id: str
    market: str
    price: Decimal
    timestamp: int


def _dec(value: Any) -> Optional[Decimal]:
    """Parse a wire number; missing, zero or malformed values become None."""
    if value is None or value == "":
        return None
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() and parsed > 0 else None


def _levels(raw: list[dict[str, Any]]) -> list[tuple[Decimal, Decimal]]:
    levels = []
    for level in raw or []:
        price, size = _dec(level.get("price")), _dec(level.get("size"))
        if price is not None and size is not None:
            levels.append((price, size))
    return levels


@dataclass
class ReconnectPolicy:
    """
    Bounded exponential backoff: delay = base_delay * 2^(attempt - 1).
    Reset after every successful connect.
    """
    base_delay: float = 1.0
    max_attempts: int = 10
    attempts: int = 0

    def next_delay(self) -> Optional[float]:
        """Delay before the next attempt, or None once attempts are exhausted."""
        if self.attempts >= self.max_attempts:
            return None
        self.attempts += 1
        return self.base_delay * 2 ** (self.attempts - 1)

    def reset(self) -> None:
        self.attempts = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts


class PolymarketWebSocketClient:
    """WebSocket client for real-time market data."""

    def __init__(
        self,
        ws_url: str = "wss://ws-subscriptions-clob.polymarket.com/ws/market",
        reconnect_policy: Optional[ReconnectPolicy] = None,
        ping_interval: int = 30,
    ):
        self.ws_url = ws_url
        self.reconnect = reconnect_policy or ReconnectPolicy()
        self.ping_interval = ping_interval

        self._ws: Optional[Any] = None
        self._running = False
        self._connected = False
        self._subscribed_assets: set[str] = set()

        # Callbacks
        self._on_book: Optional[Callable[[BookUpdate], None]] = None
        self._on_price_change: Optional[Callable[[PriceChange], None]] = None
        self._on_best_bid_ask: Optional[Callable[[BestBidAsk], None]] = None
        self._on_last_trade_price: Optional[Callable[[LastTradePrice], None]] = None
        self._on_error: Optional[Callable[[Exception], None]] = None
        self._on_connected: Optional[Callable[[], None]] = None
        self._on_disconnected: Optional[Callable[[str], None]] = None
        self._on_gave_up: Optional[Callable[[int], None]] = None

        self._last_message_time = 0.0

    def on_book(self, callback: Callable[[BookUpdate], None]) -> None:
        self._on_book = callback

    def on_price_change(self, callback: Callable[[PriceChange], None]) -> None:
        self._on_price_change = callback

    def on_best_bid_ask(self, callback: Callable[[BestBidAsk], None]) -> None:
        self._on_best_bid_ask = callback

    def on_last_trade_price(self, callback: Callable[[LastTradePrice], None]) -> None:
        self._on_last_trade_price = callback

    def on_error(self, callback: Callable[[Exception], None]) -> None:
        self._on_error = callback

    def on_connected(self, callback: Callable[[], None]) -> None:
        """Feed available."""
        self._on_connected = callback

    def on_disconnected(self, callback: Callable[[str], None]) -> None:
        """Feed interrupted; receives a reason string."""
        self._on_disconnected = callback

    def on_gave_up(self, callback: Callable[[int], None]) -> None:
        """Reconnect attempts exhausted; receives the attempt count."""
        self._on_gave_up = callback

    async def connect(self, asset_ids: list[str]) -> None:
        """
        Connect, subscribe and process messages until disconnect() is called
        or reconnect attempts are exhausted.
        """
        self._running = True
        self._subscribed_assets = set(asset_ids)

        while self._running:
            try:
                await self._connect_and_subscribe()
                self.reconnect.reset()
                await self._message_loop()
                reason = "closed"
            except ConnectionClosed as e:
                reason = str(e)
            except Exception as e:
                reason = str(e) or type(e).__name__
                if self._on_error:
                    self._on_error(e)

            was_connected = self._connected
            self._connected = False
            if was_connected and self._on_disconnected:
                self._on_disconnected(reason)

            if not self._running:
                break

            delay = self.reconnect.next_delay()
            if delay is None:
                self._running = False
                if self._on_gave_up:
                    self._on_gave_up(self.reconnect.attempts)
                break
            await asyncio.sleep(delay)

    async def _connect_and_subscribe(self) -> None:
        """Establish connection and send subscription message."""
        self._ws = await websockets.connect(
            self.ws_url,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_interval * 2,
        )

        subscribe_msg = {
            "type": "market",
            "assets_ids": sorted(self._subscribed_assets),
        }
        await self._ws.send(json.dumps(subscribe_msg))
        self._connected = True

        if self._on_connected:
            self._on_connected()

    async def _message_loop(self) -> None:
        async for message in self._ws:
            self._last_message_time = time.time()

            try:
                data = json.loads(message)
            except (json.JSONDecodeError, TypeError):
                continue  # PONG and other keepalive frames

            # Initial snapshots arrive as a list of events
            events = data if isinstance(data, list) else [data]
            for event in events:
                if not isinstance(event, dict):
                    continue
                try:
                    self.handle_message(event)
                except Exception as e:
                    if self._on_error:
                        self._on_error(e)

    def handle_message(self, data: dict[str, Any]) -> None:
        """Route one decoded event to the matching callback."""
        event_type = data.get("event_type", "")
        market = data.get("market", "")
        timestamp = int(data.get("timestamp", 0) or 0)

        if event_type == WSMessageType.BOOK.value:
            if self._on_book:
                self._on_book(BookUpdate(
                    asset_id=data.get("asset_id", ""),
                    market=market,
                    bids=_levels(data.get("bids", [])),
                    asks=_levels(data.get("asks", [])),
                    timestamp=timestamp,
                ))

        elif event_type == WSMessageType.PRICE_CHANGE.value:
            if not self._on_price_change:
                return
            # Current schema nests asset ids per change; older one has a single asset_id
            changes = data.get("price_changes")
            if changes is None:
                changes = [
                    {**change, "asset_id": data.get("asset_id", "")}
                    for change in data.get("changes", [])
                ]
            for change in changes:
                price = _dec(change.get("price"))
                if price is None:
                    continue
                self._on_price_change(PriceChange(
                    asset_id=change.get("asset_id", ""),
                    market=market,
                    price=price,
                    size=_dec(change.get("size")) or Decimal("0"),
                    side=change.get("side", ""),
                    best_bid=_dec(change.get("best_bid")),
                    best_ask=_dec(change.get("best_ask")),
                    timestamp=timestamp,
                ))

        elif event_type == WSMessageType.BEST_BID_ASK.value:
            if self._on_best_bid_ask:
                self._on_best_bid_ask(BestBidAsk(
                    asset_id=data.get("asset_id", ""),
                    market=market,
                    best_bid=_dec(data.get("best_bid")),
                    best_ask=_dec(data.get("best_ask")),
                    timestamp=timestamp,
                ))

        elif event_type == WSMessageType.LAST_TRADE_PRICE.value:
            price = _dec(data.get("price"))
            if self._on_last_trade_price and price is not None:
                self._on_last_trade_price(LastTradePrice(
                    asset_id=data.get("asset_id", ""),
                    market=market,
                    price=price,
                    timestamp=timestamp,
                ))

    async def subscribe(self, asset_ids: list[str]) -> None:
        """Subscribe to additional assets."""
        new_assets = set(asset_ids) - self._subscribed_assets
        if not new_assets:
            return

        self._subscribed_assets.update(new_assets)

        # Otherwise picked up by the next (re)connect
        if self._connected and self._ws is not None:
            msg = {
                "assets_ids": sorted(new_assets),
                "operation": "subscribe",
            }
            await self._ws.send(json.dumps(msg))

    async def disconnect(self) -> None:
        self._running = False
        if self._ws is not None:
            await self._ws.close()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def subscribed_assets(self) -> set[str]:
        return set(self._subscribed_assets)

    @property
    def last_message_age(self) -> float:
        """Seconds since last message received."""
        if self._last_message_time == 0:
            return float("inf")
        return time.time() - self._last_message_time
