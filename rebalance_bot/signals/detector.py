"""
Rebalancing arbitrage detector.
Tracks markets where YES + NO < 1 by at least the configured minimum edge.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Optional

from ..events import Subscribers, Unsubscribe
from ..risk.sizing import arb_profit, size_position

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import TradingConfig
    from ..monitor import Logger
    from ..prices import PriceSnapshot, PriceState


@dataclass(frozen=True)
class Opportunity:
    """
    Rebalancing arbitrage opportunity.

    When YES + NO < 1, buying both sides at the same size guarantees a
    payout of $1 per share at resolution for less than $1.
    """
    market_id: str
    yes_price: Decimal
    no_price: Decimal
    yes_token_id: Optional[str]
    no_token_id: Optional[str]
    edge: Decimal  # 1 - (yes + no)
    position_size: Decimal  # Capital per leg
    expected_profit: Decimal
    detected_at: float = field(default_factory=time.time)

    @property
    def combined_price(self) -> Decimal:
        return self.yes_price + self.no_price

    @property
    def profit_percent(self) -> Decimal:
        return arb_profit(self.yes_price, self.no_price, self.position_size).profit_percent

    @property
    def age_ms(self) -> float:
        return (time.time() - self.detected_at) * 1000

    def to_dict(self) -> dict:
        return {
            "market_id": self.market_id,
            "yes_price": str(self.yes_price),
            "no_price": str(self.no_price),
            "edge": str(self.edge),
            "position_size": str(self.position_size),
            "expected_profit": str(self.expected_profit),
            "detected_at": self.detected_at,
        }


@dataclass
class EdgeStats:
    """Rolling edge observations, for logs only."""
    checks: int = 0
    total_abs_edge: Decimal = Decimal("0")
    max_edge: Decimal = Decimal("0")  # Signed edge with the largest magnitude
    opportunities: int = 0
    started_at: float = field(default_factory=time.time)

    def observe(self, edge: Decimal) -> None:
        self.checks += 1
        self.total_abs_edge += abs(edge)
        if abs(edge) > abs(self.max_edge):
            self.max_edge = edge

    @property
    def avg_abs_edge(self) -> Decimal:
        if self.checks == 0:
            return Decimal("0")
        return self.total_abs_edge / self.checks

    def to_dict(self) -> dict:
        return {
            "checks": self.checks,
            "avg_abs_edge": str(self.avg_abs_edge),
            "max_edge": str(self.max_edge),
            "opportunities_found": self.opportunities,
        }


class OpportunityDetector:
    """
    Maintains the set of active opportunities, at most one per market.

    An opportunity is (re)published only when a market first crosses the
    threshold or its edge strictly improves. It is dropped, with a closure
    event, on the first tick whose edge falls below the threshold.
    """

    def __init__(
        self,
        price_state: "PriceState",
        trading_config: "TradingConfig",
        logger: Optional["Logger"] = None,
        stats_interval_seconds: float = 30,
    ):
        self.price_state = price_state
        self.trading = trading_config
        self.logger = logger
        self.stats_interval = stats_interval_seconds

        self.min_edge = Decimal(str(trading_config.min_edge))
        self.bankroll = Decimal(str(trading_config.bankroll))
        self.max_position_size = Decimal(str(trading_config.max_position_size))
        self.kelly_fraction = Decimal(str(trading_config.kelly_fraction))
        self.kelly_edge_scale = Decimal(str(trading_config.kelly_edge_scale))

        self._opportunities: dict[str, Opportunity] = {}
        self._on_opportunity = Subscribers("opportunity", logger)
        self._on_close = Subscribers("opportunity_closed", logger)
        self._unsubscribe: Optional[Unsubscribe] = None

        self._stats = EdgeStats()

    def start(self) -> None:
        """Listen for price updates."""
        if self._unsubscribe is None:
            self._unsubscribe = self.price_state.on_update(self.on_price_update)

        if self.logger:
            self.logger.info(
                "detector_started",
                min_edge=str(self.min_edge),
                max_position_size=str(self.max_position_size),
                bankroll=str(self.bankroll),
            )

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_opportunity(self, handler: Callable[[Opportunity], None]) -> Unsubscribe:
        """Register handler for new or improved opportunities."""
        return self._on_opportunity.subscribe(handler)

    def on_close(self, handler: Callable[[str, Opportunity], None]) -> Unsubscribe:
        """Register handler for (market_id, opportunity) closures."""
        return self._on_close.subscribe(handler)

    def on_price_update(self, market_id: str, snapshot: "PriceSnapshot") -> None:
        """Re-evaluate one market from its merged snapshot."""
        if not snapshot.is_complete:
            return

        yes_price, no_price = snapshot.yes_price, snapshot.no_price
        edge = Decimal("1") - (yes_price + no_price)

        self._stats.observe(edge)
        self._maybe_log_stats()

        if edge < self.min_edge:
            closed = self._opportunities.pop(market_id, None)
            if closed is not None:
                if self.logger:
                    self.logger.opportunity_closed(market_id, str(edge))
                self._on_close.publish(market_id, closed)
            return

        self._stats.opportunities += 1

        position_size = size_position(
            edge,
            self.bankroll,
            self.max_position_size,
            fraction=self.kelly_fraction,
            edge_scale=self.kelly_edge_scale,
        )
        profit = arb_profit(yes_price, no_price, position_size)

        existing = self._opportunities.get(market_id)
        if existing is not None and edge <= existing.edge:
            return

        opportunity = Opportunity(
            market_id=market_id,
            yes_price=yes_price,
            no_price=no_price,
            yes_token_id=snapshot.yes_token_id,
            no_token_id=snapshot.no_token_id,
            edge=edge,
            position_size=position_size,
            expected_profit=profit.profit,
        )
        self._opportunities[market_id] = opportunity

        if self.logger:
            self.logger.opportunity_detected(
                market_id=market_id,
                edge=str(edge),
                yes_price=str(yes_price),
                no_price=str(no_price),
                position_size=str(position_size),
                expected_profit=str(profit.profit),
            )

        self._on_opportunity.publish(opportunity)

    def scan_all(self) -> list[Opportunity]:
        """
        Re-evaluate every cached snapshot.
        Used on startup and for periodic reconciliation.
        """
        for snapshot in self.price_state.list_all():
            self.on_price_update(snapshot.market_id, snapshot)

        if self.logger:
            self.logger.info("scan_complete", active=len(self._opportunities))

        return self.get_active()

    def get_active(self) -> list[Opportunity]:
        return list(self._opportunities.values())

    def get(self, market_id: str) -> Optional[Opportunity]:
        return self._opportunities.get(market_id)

    def remove(self, market_id: str) -> Optional[Opportunity]:
        """Drop a market's active opportunity without a closure event."""
        return self._opportunities.pop(market_id, None)

    def _maybe_log_stats(self) -> None:
        """Log and reset edge statistics once per interval."""
        if time.time() - self._stats.started_at < self.stats_interval:
            return

        if self.logger:
            self.logger.info(
                "edge_statistics",
                threshold=str(self.min_edge),
                **self._stats.to_dict(),
            )
        self._stats = EdgeStats(opportunities=self._stats.opportunities)

    def get_stats(self) -> dict:
        return {
            **self._stats.to_dict(),
            "active_opportunities": len(self._opportunities),
        }
