"""
Main arbitrage bot orchestration.
Wires prices -> detector -> validator -> coordinator and runs the periodic loops.
"""

import asyncio
import signal
import time
from typing import Optional

import aiohttp

from .config import Config, load_config_from_env
from .connector import (
    AccountSigner,
    DryRunOrderClient,
    DryRunSigner,
    PolymarketRestClient,
    PolymarketWebSocketClient,
    ReconnectPolicy,
)
from .exec import ExecutionCoordinator, OrderBuilder
from .monitor import HealthServer, Logger, MetricsCollector
from .prices import FeedRouter, PriceState
from .signals import Opportunity, OpportunityDetector, OpportunityValidator


class ArbitrageBot:
    """
    YES/NO rebalancing arbitrage bot for Polymarket.

    Strategy:
    1. Track YES and NO prices per market from the market channel
    2. Detect markets where YES + NO < 1 - min_edge
    3. Re-validate against the latest prices, then buy both sides together
    4. Hold to resolution, where one side pays $1
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        rest_client: Optional[PolymarketRestClient] = None,
        ws_client: Optional[PolymarketWebSocketClient] = None,
        signer=None,
    ):
        self.config = config or load_config_from_env()

        # Validate configuration
        errors = self.config.validate()
        if errors:
            raise ValueError(f"Configuration errors: {errors}")

        self.logger = Logger(
            name="rebalance_bot",
            level=self.config.log_level,
            log_file=self.config.log_file or None,
        )

        conn = self.config.connection

        if signer is None:
            if self.config.dry_run:
                signer = DryRunSigner()
            else:
                signer = AccountSigner(
                    private_key=self.config.private_key,
                    exchange_address=conn.exchange_address,
                    chain_id=conn.chain_id,
                    api_key=self.config.api_key,
                    api_secret=self.config.api_secret,
                    api_passphrase=self.config.api_passphrase,
                )
        self.signer = signer

        self.rest_client = rest_client or PolymarketRestClient(
            signer=signer if isinstance(signer, AccountSigner) else None,
            base_url=conn.clob_rest_url,
            timeout_seconds=conn.rest_timeout_seconds,
            max_retries=conn.max_retries,
            retry_backoff_base=conn.retry_backoff_base,
            logger=self.logger,
        )

        self.ws_client = ws_client or PolymarketWebSocketClient(
            ws_url=conn.clob_ws_url,
            reconnect_policy=ReconnectPolicy(
                base_delay=conn.ws_reconnect_base_delay_seconds,
                max_attempts=conn.ws_max_reconnect_attempts,
            ),
            ping_interval=conn.ws_ping_interval_seconds,
        )

        self.price_state = PriceState(logger=self.logger)
        self.router = FeedRouter(self.price_state, logger=self.logger)

        self.detector = OpportunityDetector(
            price_state=self.price_state,
            trading_config=self.config.trading,
            logger=self.logger,
            stats_interval_seconds=self.config.monitor.edge_stats_interval_seconds,
        )
        self.validator = OpportunityValidator(self.config.validation, self.config.trading)

        self.order_builder = OrderBuilder(
            maker_address=self.config.funder_address or signer.address,
            signer_address=signer.address,
            signature_type=self.config.signature_type,
            expiration_seconds=self.config.trading.order_expiration_seconds,
        )
        submitter = DryRunOrderClient(self.logger) if self.config.dry_run else self.rest_client
        self.executor = ExecutionCoordinator(
            order_builder=self.order_builder,
            signer=signer,
            submitter=submitter,
            detector=self.detector,
            logger=self.logger,
        )

        self.metrics = MetricsCollector()
        self.health: Optional[HealthServer] = None
        if self.config.monitor.health_port > 0:
            self.health = HealthServer(
                self.get_status,
                port=self.config.monitor.health_port,
                logger=self.logger,
            )

        self.detector.on_opportunity(self._handle_opportunity)

        # State
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._in_flight = 0
        self._executing_markets: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._pending: Optional[list[Opportunity]] = None

    async def start(self) -> None:
        """Start the arbitrage bot."""
        self._running = True

        self.logger.startup({
            "dry_run": self.config.dry_run,
            "min_edge": str(self.config.trading.min_edge),
            "max_position_size": str(self.config.trading.max_position_size),
            "max_concurrent_executions": self.config.trading.max_concurrent_executions,
        })

        try:
            # Derive API credentials if not provided
            if isinstance(self.signer, AccountSigner) and not self.signer.has_l2_credentials():
                self.logger.info("deriving_api_credentials")
                await self.rest_client.derive_api_key()

            await self._refresh_markets()
            self._setup_ws_callbacks()

            self.detector.start()
            self._rescan()

            if self.health is not None:
                await self.health.start()

            await asyncio.gather(
                self._ws_loop(),
                self._market_refresh_loop(),
                self._stats_loop(),
            )

        except asyncio.CancelledError:
            self.logger.info("bot_cancelled")
        except Exception as e:
            self.logger.error("bot_error", error=str(e))
            raise
        finally:
            await self._cleanup()

    async def stop(self) -> None:
        """Stop the arbitrage bot gracefully."""
        if not self._running:
            return

        self.logger.info("bot_stopping", in_flight=self._in_flight)
        self._running = False
        self._shutdown_event.set()
        self.detector.stop()

        await self.ws_client.disconnect()

        # Let in-flight executions reconcile
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        self.logger.shutdown()

    # === Opportunity pipeline ===

    def _handle_opportunity(self, opportunity: Opportunity) -> None:
        if self._pending is not None:
            self._pending.append(opportunity)
            return
        self._admit(opportunity)

    def _rescan(self) -> None:
        """Re-scan every snapshot and admit what it publishes best-first."""
        self._pending = []
        try:
            self.detector.scan_all()
        finally:
            pending, self._pending = self._pending, None

        for opportunity in self.validator.rank(pending):
            self._admit(opportunity)

    def _admit(self, opportunity: Opportunity) -> None:
        """Admission control and validation; executions run as tasks."""
        try:
            self.metrics.record_opportunity()

            max_concurrent = self.config.trading.max_concurrent_executions
            if (
                self._in_flight >= max_concurrent
                or opportunity.market_id in self._executing_markets
            ):
                self.metrics.record_skip()
                self.detector.remove(opportunity.market_id)
                self.logger.debug(
                    "opportunity_skipped",
                    market_id=opportunity.market_id,
                    in_flight=self._in_flight,
                )
                return

            result = self.validator.validate(
                opportunity,
                self.price_state.get(opportunity.market_id),
            )
            if not result.valid:
                self.metrics.record_rejection(result.reason.value)
                # Kept otherwise, so an unchanged edge is not re-published
                if result.reason.price_dependent:
                    self.detector.remove(opportunity.market_id)
                self.logger.opportunity_rejected(
                    opportunity.market_id,
                    result.reason.value,
                    result.message,
                )
                return

            # Counted before the task first runs so admission sees it
            task = asyncio.create_task(self._execute(opportunity))
            self._in_flight += 1
            self._executing_markets.add(opportunity.market_id)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        except Exception as e:
            self.logger.error(
                "opportunity_handler_error",
                market_id=opportunity.market_id,
                error=str(e),
            )

    async def _execute(self, opportunity: Opportunity) -> None:
        start_time = time.time()
        try:
            result = await self.executor.execute(opportunity)
            self.metrics.record_execution(
                result.status.value,
                result.expected_profit,
                (time.time() - start_time) * 1000,
            )
        finally:
            self._in_flight -= 1
            self._executing_markets.discard(opportunity.market_id)

    # === Feed ===

    def _setup_ws_callbacks(self) -> None:
        """Setup WebSocket event callbacks."""

        def on_connected() -> None:
            self.logger.ws_connected(self.config.connection.clob_ws_url)
            self.metrics.record_ws_connected()

        def on_disconnected(reason: str) -> None:
            self.logger.ws_disconnected(reason)

        def on_error(e: Exception) -> None:
            self.logger.error("ws_error", error=str(e))
            self.metrics.record_feed_error()

        def on_gave_up(attempts: int) -> None:
            self.logger.error("ws_reconnect_exhausted", attempts=attempts)

        self.ws_client.on_book(self.router.on_book)
        self.ws_client.on_price_change(self.router.on_price_change)
        self.ws_client.on_best_bid_ask(self.router.on_best_bid_ask)
        self.ws_client.on_last_trade_price(self.router.on_last_trade_price)
        self.ws_client.on_connected(on_connected)
        self.ws_client.on_disconnected(on_disconnected)
        self.ws_client.on_error(on_error)
        self.ws_client.on_gave_up(on_gave_up)

    async def _refresh_markets(self) -> int:
        """Fetch the catalog, register new markets and subscribe their tokens."""
        try:
            markets = await self.rest_client.fetch_markets(
                limit=self.config.connection.market_fetch_limit,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error("market_fetch_failed", error=str(e))
            self.metrics.record_feed_error()
            return 0

        new_tokens: list[str] = []
        for market in markets:
            if self.router.register(market):
                new_tokens.extend([market.yes_token_id, market.no_token_id])

        if new_tokens:
            await self.ws_client.subscribe(new_tokens)

        self.logger.info(
            "markets_registered",
            new=len(new_tokens) // 2,
            total=self.router.market_count,
        )
        return len(new_tokens) // 2

    # === Loops ===

    async def _wait(self, seconds: float) -> bool:
        """Sleep unless shutdown comes first. Returns True if still running."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
        return self._running

    async def _ws_loop(self) -> None:
        """Run the feed until stopped or reconnects are exhausted."""
        try:
            await self.ws_client.connect(self.router.get_all_token_ids())
        except Exception as e:
            self.logger.error("ws_loop_error", error=str(e))

    async def _market_refresh_loop(self) -> None:
        """Pick up new markets and re-scan every cached snapshot."""
        interval = self.config.monitor.market_refresh_interval_seconds

        while await self._wait(interval):
            try:
                await self._refresh_markets()
                self._rescan()
            except Exception as e:
                self.logger.error("market_refresh_error", error=str(e))

    async def _stats_loop(self) -> None:
        interval = self.config.monitor.stats_interval_seconds

        while await self._wait(interval):
            try:
                self.logger.info(
                    "bot_stats",
                    markets=self.router.market_count,
                    in_flight=self._in_flight,
                    detector=self.detector.get_stats(),
                    executor=self.executor.get_stats(),
                    metrics=self.metrics.get_session_metrics(),
                )
            except Exception as e:
                self.logger.error("stats_error", error=str(e))

    async def _cleanup(self) -> None:
        """Cleanup resources."""
        self._running = False
        self._shutdown_event.set()
        self.detector.stop()
        if self.health is not None:
            await self.health.stop()
        await self.rest_client.close()
        self.logger.info("cleanup_complete")

    def get_status(self) -> dict:
        """Get current bot status."""
        active = self.detector.get_active()
        return {
            "running": self._running,
            "dry_run": self.config.dry_run,
            "markets": self.router.market_count,
            "detector": self.detector.get_stats(),
            "executor": self.executor.get_stats(),
            "metrics": self.metrics.get_session_metrics(),
            "active_opportunities": len(active),
            "top_opportunities": [opp.to_dict() for opp in self.validator.rank(active)[:5]],
            "in_flight_executions": self._in_flight,
            "ws_connected": self.ws_client.is_connected,
        }


async def run_bot(config: Optional[Config] = None) -> None:
    """Run the arbitrage bot with signal handling."""
    bot = ArbitrageBot(config)

    # Setup signal handlers
    loop = asyncio.get_running_loop()
    stop_tasks: set[asyncio.Task] = set()

    def signal_handler() -> None:
        task = asyncio.create_task(bot.stop())
        stop_tasks.add(task)
        task.add_done_callback(stop_tasks.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await bot.start()
    except KeyboardInterrupt:
        await bot.stop()
