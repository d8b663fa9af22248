"""
Unit tests for the opportunity detector lifecycle.
"""

from decimal import Decimal
from unittest.mock import Mock

from rebalance_bot.config import TradingConfig
from rebalance_bot.prices import PriceState
from rebalance_bot.signals import OpportunityDetector


def feed(price_state, market_id, yes, no):
    price_state.update(
        market_id,
        yes_price=yes,
        no_price=no,
        yes_token_id=f"{market_id}-yes",
        no_token_id=f"{market_id}-no",
    )


class TestOpportunityDetector:

    def test_worked_example(self, price_state, detector):
        handler = Mock()
        detector.on_opportunity(handler)

        feed(price_state, "m1", "0.47", "0.50")

        handler.assert_called_once()
        opp = handler.call_args.args[0]
        assert opp.market_id == "m1"
        assert opp.edge == Decimal("0.03")
        assert opp.position_size == Decimal("100")
        assert opp.expected_profit == Decimal("3.00")
        assert opp.yes_token_id == "m1-yes"
        assert opp.no_token_id == "m1-no"
        assert opp.combined_price == Decimal("0.97")
        assert detector.get("m1") is opp

    def test_incomplete_snapshot_is_ignored(self, price_state, detector):
        handler = Mock()
        detector.on_opportunity(handler)

        price_state.update("m1", yes_price="0.30")

        handler.assert_not_called()
        assert detector.get_active() == []

    def test_edge_at_threshold_creates_opportunity(self, price_state, detector):
        feed(price_state, "m1", "0.49", "0.49")

        assert detector.get("m1").edge == Decimal("0.02")

    def test_edge_below_threshold_creates_nothing(self, price_state, detector):
        feed(price_state, "m1", "0.49", "0.50")

        assert detector.get("m1") is None

    def test_closure_when_edge_drops(self, price_state, detector):
        closed = Mock()
        detector.on_close(closed)
        feed(price_state, "m1", "0.47", "0.50")

        price_state.update("m1", yes_price="0.50")

        assert detector.get("m1") is None
        closed.assert_called_once()
        market_id, opp = closed.call_args.args
        assert market_id == "m1"
        assert opp.edge == Decimal("0.03")

    def test_no_closure_event_without_active_opportunity(self, price_state, detector):
        closed = Mock()
        detector.on_close(closed)

        feed(price_state, "m1", "0.50", "0.50")

        closed.assert_not_called()

    def test_replaced_only_by_strictly_larger_edge(self, price_state, detector):
        handler = Mock()
        detector.on_opportunity(handler)

        feed(price_state, "m1", "0.47", "0.50")  # edge 0.03
        first = detector.get("m1")

        price_state.update("m1", yes_price="0.46", no_price="0.51")  # same edge
        assert detector.get("m1") is first
        assert handler.call_count == 1

        price_state.update("m1", yes_price="0.48", no_price="0.50")  # smaller edge
        assert detector.get("m1") is first
        assert handler.call_count == 1

        price_state.update("m1", yes_price="0.45", no_price="0.50")  # larger edge
        assert detector.get("m1").edge == Decimal("0.05")
        assert handler.call_count == 2

    def test_at_most_one_opportunity_per_market(self, price_state, detector):
        feed(price_state, "m1", "0.47", "0.50")
        price_state.update("m1", yes_price="0.40")
        feed(price_state, "m2", "0.45", "0.45")

        assert sorted(o.market_id for o in detector.get_active()) == ["m1", "m2"]

    def test_remove_is_silent(self, price_state, detector):
        closed = Mock()
        detector.on_close(closed)
        feed(price_state, "m1", "0.47", "0.50")

        removed = detector.remove("m1")

        assert removed.market_id == "m1"
        assert detector.get("m1") is None
        closed.assert_not_called()
        assert detector.remove("m1") is None

    def test_removed_opportunity_recreated_by_next_tick(self, price_state, detector):
        handler = Mock()
        detector.on_opportunity(handler)
        feed(price_state, "m1", "0.47", "0.50")
        detector.remove("m1")

        price_state.update("m1", yes_price="0.47")

        assert handler.call_count == 2
        assert detector.get("m1") is not None

    def test_sizing_is_capped(self, price_state, detector):
        feed(price_state, "m1", "0.30", "0.30")

        opp = detector.get("m1")
        assert opp.position_size == Decimal("100")
        assert opp.expected_profit == Decimal("40")

    def test_scan_all_picks_up_cached_snapshots(self, price_state, trading_config):
        feed(price_state, "m1", "0.47", "0.50")
        feed(price_state, "m2", "0.50", "0.50")
        detector = OpportunityDetector(price_state, trading_config)

        active = detector.scan_all()

        assert [o.market_id for o in active] == ["m1"]

    def test_stop_unsubscribes(self, price_state, detector):
        detector.stop()

        feed(price_state, "m1", "0.47", "0.50")

        assert detector.get_active() == []

    def test_subscriber_fault_does_not_block_detection(self, price_state, detector):
        def broken(opp):
            raise RuntimeError("downstream failure")

        healthy = Mock()
        detector.on_opportunity(broken)
        detector.on_opportunity(healthy)

        feed(price_state, "m1", "0.47", "0.50")

        healthy.assert_called_once()
        assert detector.get("m1") is not None

    def test_logs_detection_and_closure(self, price_state, detector, mock_logger):
        feed(price_state, "m1", "0.47", "0.50")
        price_state.update("m1", yes_price="0.55")

        mock_logger.opportunity_detected.assert_called_once()
        mock_logger.opportunity_closed.assert_called_once_with("m1", "-0.05")

    def test_edge_statistics_logged_and_reset(self):
        logger = Mock()
        state = PriceState()
        detector = OpportunityDetector(
            state, TradingConfig(), logger=logger, stats_interval_seconds=0
        )
        detector.start()

        feed(state, "m1", "0.47", "0.50")

        events = [c.args[0] for c in logger.info.call_args_list]
        assert "edge_statistics" in events
        assert detector.get_stats()["active_opportunities"] == 1
