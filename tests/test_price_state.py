"""
Unit tests for per-market price snapshots and the pub/sub registry.
"""

from decimal import Decimal
from unittest.mock import Mock

import pytest

from rebalance_bot.events import Subscribers
from rebalance_bot.prices import PriceSnapshot, PriceState


class TestSubscribers:

    def test_publish_reaches_handlers_in_order(self):
        subs = Subscribers("test")
        calls = []
        subs.subscribe(lambda x: calls.append(("a", x)))
        subs.subscribe(lambda x: calls.append(("b", x)))

        subs.publish(1)

        assert calls == [("a", 1), ("b", 1)]

    def test_unsubscribe_stops_delivery(self):
        subs = Subscribers("test")
        handler = Mock()
        unsubscribe = subs.subscribe(handler)

        unsubscribe()
        unsubscribe()  # second call is a no-op
        subs.publish("x")

        handler.assert_not_called()
        assert len(subs) == 0

    def test_faulty_handler_does_not_starve_others(self):
        logger = Mock()
        subs = Subscribers("prices", logger)
        healthy = Mock()

        def broken(_):
            raise RuntimeError("boom")

        subs.subscribe(broken)
        subs.subscribe(healthy)
        subs.publish("tick")

        healthy.assert_called_once_with("tick")
        logger.error.assert_called_once()
        assert logger.error.call_args.args[0] == "subscriber_error"

    def test_handler_added_during_publish_sees_next_event(self):
        subs = Subscribers("test")
        late = Mock()

        def adder(value):
            subs.subscribe(late)

        subs.subscribe(adder)
        subs.publish(1)
        late.assert_not_called()

        subs.publish(2)
        late.assert_called_once_with(2)

    def test_handler_may_unsubscribe_itself(self):
        subs = Subscribers("test")
        calls = []
        handles = {}

        def once(value):
            calls.append(value)
            handles["once"]()

        handles["once"] = subs.subscribe(once)
        subs.publish(1)
        subs.publish(2)

        assert calls == [1]


class TestPriceState:

    def test_first_update_creates_snapshot(self, price_state):
        snapshot = price_state.update("m1", yes_price=Decimal("0.47"))

        assert snapshot.market_id == "m1"
        assert snapshot.yes_price == Decimal("0.47")
        assert snapshot.no_price is None
        assert not snapshot.is_complete
        assert "m1" in price_state

    def test_partial_updates_merge(self, price_state):
        price_state.update("m1", yes_price=Decimal("0.47"), yes_token_id="1001")
        price_state.update("m1", no_price=Decimal("0.50"), no_token_id="1002")

        snapshot = price_state.get("m1")
        assert snapshot.yes_price == Decimal("0.47")
        assert snapshot.no_price == Decimal("0.50")
        assert snapshot.yes_token_id == "1001"
        assert snapshot.no_token_id == "1002"
        assert snapshot.is_complete
        assert snapshot.combined_price == Decimal("0.97")

    def test_last_write_wins_per_field(self, price_state):
        price_state.update("m1", yes_price="0.47", no_price="0.50")
        price_state.update("m1", yes_price="0.48")

        snapshot = price_state.get("m1")
        assert snapshot.yes_price == Decimal("0.48")
        assert snapshot.no_price == Decimal("0.50")

    def test_none_keeps_previous_value(self, price_state):
        price_state.update("m1", yes_price="0.47", no_price="0.50")
        price_state.update("m1", yes_price=None, no_price="0.51")

        snapshot = price_state.get("m1")
        assert snapshot.yes_price == Decimal("0.47")
        assert snapshot.no_price == Decimal("0.51")

    def test_float_prices_are_coerced_to_decimal(self, price_state):
        snapshot = price_state.update("m1", yes_price=0.1, no_price=0.2)

        assert snapshot.yes_price == Decimal("0.1")
        assert snapshot.combined_price == Decimal("0.3")

    def test_unknown_field_rejected(self, price_state):
        with pytest.raises(ValueError, match="Unknown price fields"):
            price_state.update("m1", best_bid="0.4")

    def test_invalid_price_rejected(self, price_state):
        with pytest.raises(ValueError):
            price_state.update("m1", yes_price="not-a-price")

    def test_non_finite_price_is_incomplete(self, price_state):
        price_state.update("m1", yes_price="0.47", no_price=float("nan"))

        assert not price_state.is_complete("m1")
        assert price_state.get("m1").combined_price is None

    def test_zero_is_a_price(self, price_state):
        price_state.update("m1", yes_price="0", no_price="0.50")

        assert price_state.is_complete("m1")

    def test_observers_receive_full_snapshot(self, price_state):
        seen = []
        price_state.on_update(lambda market_id, snap: seen.append((market_id, snap)))

        price_state.update("m1", yes_price="0.47")
        price_state.update("m1", no_price="0.50")

        assert [m for m, _ in seen] == ["m1", "m1"]
        assert seen[-1][1].yes_price == Decimal("0.47")
        assert seen[-1][1].no_price == Decimal("0.50")

    def test_published_snapshot_is_not_mutated_by_later_updates(self, price_state):
        seen = []
        price_state.on_update(lambda _, snap: seen.append(snap))

        price_state.update("m1", yes_price="0.47")
        price_state.update("m1", yes_price="0.40")

        assert seen[0].yes_price == Decimal("0.47")
        assert seen[1].yes_price == Decimal("0.40")

    def test_observer_unsubscribe(self, price_state):
        handler = Mock()
        unsubscribe = price_state.on_update(handler)
        unsubscribe()

        price_state.update("m1", yes_price="0.47")

        handler.assert_not_called()

    def test_list_all_and_len(self, price_state):
        price_state.update("m1", yes_price="0.47")
        price_state.update("m2", no_price="0.50")

        assert len(price_state) == 2
        assert {s.market_id for s in price_state.list_all()} == {"m1", "m2"}
        assert price_state.get("missing") is None
        assert not price_state.is_complete("missing")


def test_snapshot_age_is_infinite_before_first_update():
    assert PriceSnapshot(market_id="m1").age_seconds == float("inf")
