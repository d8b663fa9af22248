"""
Unit tests for paired order construction and execution.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, Mock

import pytest

from conftest import (
    MAKER,
    MARKET_ID,
    NO_TOKEN,
    YES_TOKEN,
    FakeSigner,
    FakeSubmitter,
    make_opportunity,
)
from rebalance_bot.connector.rest_client import SubmitResponse
from rebalance_bot.exec import (
    ExecutionCoordinator,
    ExecutionStage,
    ExecutionStatus,
    LegErrorKind,
    LegStatus,
    OrderBuilder,
    OrderSide,
)
from rebalance_bot.exec.orders import ZERO_ADDRESS, to_base_units


class TestOrderBuilder:

    def test_buy_amounts(self, order_builder):
        order = order_builder.build_order(YES_TOKEN, OrderSide.BUY, Decimal("0.47"), Decimal("100"))

        assert order.maker_amount == 47_000_000  # USDC paid
        assert order.taker_amount == 100_000_000  # shares received
        assert order.maker == MAKER
        assert order.signer == MAKER
        assert order.taker == ZERO_ADDRESS
        assert order.side == OrderSide.BUY

    def test_sell_amounts_are_swapped(self, order_builder):
        order = order_builder.build_order(YES_TOKEN, OrderSide.SELL, Decimal("0.47"), Decimal("100"))

        assert order.maker_amount == 100_000_000
        assert order.taker_amount == 47_000_000

    def test_each_order_gets_its_own_salt(self, order_builder, opportunity):
        yes_order, no_order = order_builder.build_arb_orders(opportunity)

        assert yes_order.salt != no_order.salt
        assert yes_order.token_id == YES_TOKEN
        assert no_order.token_id == NO_TOKEN
        assert yes_order.size == no_order.size == Decimal("100")

    @pytest.mark.parametrize("price", [Decimal("0"), Decimal("1"), Decimal("1.2")])
    def test_price_out_of_range(self, order_builder, price):
        with pytest.raises(ValueError, match="Price out of range"):
            order_builder.build_order(YES_TOKEN, OrderSide.BUY, price, Decimal("10"))

    def test_requires_token_and_size(self, order_builder):
        with pytest.raises(ValueError):
            order_builder.build_order("", OrderSide.BUY, Decimal("0.5"), Decimal("10"))
        with pytest.raises(ValueError):
            order_builder.build_order(YES_TOKEN, OrderSide.BUY, Decimal("0.5"), Decimal("0"))

    def test_wire_format(self, order_builder):
        order = order_builder.build_order(YES_TOKEN, OrderSide.BUY, Decimal("0.5"), Decimal("10"))

        body = order.to_json("0xsig")
        message = order.to_message()

        assert body["side"] == "BUY"
        assert body["makerAmount"] == "5000000"
        assert body["signature"] == "0xsig"
        assert message["tokenId"] == 1001
        assert message["side"] == 0

    def test_base_units_round_down(self):
        assert to_base_units(Decimal("0.4666666666")) == 466_666


class TestExecutionCoordinator:

    @pytest.mark.asyncio
    async def test_success(self, coordinator, submitter, opportunity):
        result = await coordinator.execute(opportunity)

        assert result.status == ExecutionStatus.SUCCESS
        assert result.success
        assert result.stage == ExecutionStage.RECONCILED
        assert result.yes_leg.order_id == f"order-{YES_TOKEN}"
        assert result.no_leg.order_id == f"order-{NO_TOKEN}"
        assert result.expected_profit == Decimal("3.00")
        assert len(submitter.submitted) == 2
        assert result.naked_leg is None

    @pytest.mark.asyncio
    async def test_partial_fill_when_no_leg_rejected(self, detector, order_builder, mock_logger, opportunity):
        coordinator = ExecutionCoordinator(
            order_builder, FakeSigner(), FakeSubmitter(fail_tokens={NO_TOKEN}), detector, mock_logger
        )

        result = await coordinator.execute(opportunity)

        assert result.status == ExecutionStatus.PARTIAL_FILL
        assert result.partial_fill
        assert not result.success
        assert result.yes_leg.status == LegStatus.SUBMITTED
        assert result.no_leg.status == LegStatus.FAILED
        assert result.no_leg.error_kind == LegErrorKind.SUBMISSION_FAILURE
        assert result.naked_leg is result.yes_leg
        mock_logger.partial_fill.assert_called_once()
        assert mock_logger.partial_fill.call_args.kwargs["filled_leg"] == "yes"
        mock_logger.execution_failed.assert_not_called()

    @pytest.mark.asyncio
    async def test_partial_fill_when_yes_leg_rejected(self, detector, order_builder, opportunity):
        coordinator = ExecutionCoordinator(
            order_builder, FakeSigner(), FakeSubmitter(fail_tokens={YES_TOKEN}), detector
        )

        result = await coordinator.execute(opportunity)

        assert result.status == ExecutionStatus.PARTIAL_FILL
        assert result.naked_leg is result.no_leg

    @pytest.mark.asyncio
    async def test_both_legs_fail(self, detector, order_builder, mock_logger, opportunity):
        coordinator = ExecutionCoordinator(
            order_builder,
            FakeSigner(),
            FakeSubmitter(fail_tokens={YES_TOKEN, NO_TOKEN}),
            detector,
            mock_logger,
        )

        result = await coordinator.execute(opportunity)

        assert result.status == ExecutionStatus.FAILED
        assert "Both legs failed" in result.error
        mock_logger.execution_failed.assert_called_once()
        mock_logger.partial_fill.assert_not_called()

    @pytest.mark.asyncio
    async def test_signing_failure_submits_nothing(self, detector, order_builder, opportunity):
        submitter = FakeSubmitter()
        coordinator = ExecutionCoordinator(
            order_builder, FakeSigner(fail_tokens={NO_TOKEN}), submitter, detector
        )

        result = await coordinator.execute(opportunity)

        assert result.status == ExecutionStatus.FAILED
        assert result.stage == ExecutionStage.SIGNING
        assert result.no_leg.error_kind == LegErrorKind.SIGNING_FAILURE
        assert result.yes_leg.status == LegStatus.SIGNED
        assert submitter.submitted == []

    @pytest.mark.asyncio
    async def test_async_signer(self, detector, order_builder, submitter, opportunity):
        signer = Mock()
        signer.sign = AsyncMock(return_value="0xasync")
        coordinator = ExecutionCoordinator(order_builder, signer, submitter, detector)

        result = await coordinator.execute(opportunity)

        assert result.success
        assert {sig for _, sig in submitter.submitted} == {"0xasync"}

    @pytest.mark.asyncio
    async def test_build_failure(self, coordinator, submitter):
        opp = make_opportunity()
        object.__setattr__(opp, "yes_token_id", None)

        result = await coordinator.execute(opp)

        assert result.status == ExecutionStatus.FAILED
        assert result.stage == ExecutionStage.BUILDING
        assert result.yes_leg.error_kind == LegErrorKind.BUILD_FAILURE
        assert submitter.submitted == []

    @pytest.mark.asyncio
    async def test_legs_are_submitted_concurrently(self, detector, order_builder, opportunity):
        submitter = FakeSubmitter(delay=0.05)
        coordinator = ExecutionCoordinator(order_builder, FakeSigner(), submitter, detector)

        result = await coordinator.execute(opportunity)

        assert result.success
        assert submitter.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_never_escapes(self, detector, signer, opportunity):
        builder = Mock()
        builder.build_arb_orders.side_effect = KeyError("broken")
        submitter = Mock()
        submitter.submit_order = AsyncMock(return_value=SubmitResponse(order_id="x"))
        coordinator = ExecutionCoordinator(builder, signer, submitter, detector)

        result = await coordinator.execute(opportunity)

        assert result.status == ExecutionStatus.FAILED
        assert "Unexpected error" in result.error
        submitter.submit_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_active_opportunity_cleared_after_attempt(self, price_state, detector, coordinator):
        price_state.update(
            MARKET_ID,
            yes_price="0.47",
            no_price="0.50",
            yes_token_id=YES_TOKEN,
            no_token_id=NO_TOKEN,
        )
        opp = detector.get(MARKET_ID)
        assert opp is not None

        await coordinator.execute(opp)

        assert detector.get(MARKET_ID) is None

    @pytest.mark.asyncio
    async def test_stats_and_history(self, detector, order_builder, opportunity):
        submitter = FakeSubmitter()
        coordinator = ExecutionCoordinator(order_builder, FakeSigner(), submitter, detector)

        await coordinator.execute(opportunity)
        submitter.fail_tokens = {NO_TOKEN}
        await coordinator.execute(opportunity)
        submitter.fail_tokens = {YES_TOKEN, NO_TOKEN}
        await coordinator.execute(opportunity)

        stats = coordinator.get_stats()
        assert stats["total_executions"] == 3
        assert stats["successful_executions"] == 1
        assert stats["failed_executions"] == 2
        assert stats["partial_fills"] == 1
        assert stats["success_rate"] == pytest.approx(1 / 3)
        assert stats["total_expected_profit"] == "3.00"

        history = coordinator.get_history(limit=2)
        assert len(history) == 2
        assert history[-1].result.status == ExecutionStatus.FAILED
        assert history[0].opportunity is opportunity
        assert all(r.duration_ms >= 0 for r in history)

    def test_empty_stats(self, coordinator):
        stats = coordinator.get_stats()

        assert stats["total_executions"] == 0
        assert stats["success_rate"] == 0
        assert coordinator.get_history() == []

    @pytest.mark.asyncio
    async def test_parallel_executions_are_independent(self, detector, order_builder):
        submitter = FakeSubmitter(delay=0.01)
        coordinator = ExecutionCoordinator(order_builder, FakeSigner(), submitter, detector)
        opps = [make_opportunity(market_id=f"m{i}") for i in range(3)]

        results = await asyncio.gather(*(coordinator.execute(o) for o in opps))

        assert all(r.success for r in results)
        assert len({r.execution_id for r in results}) == 3
        assert len(submitter.submitted) == 6

    @pytest.mark.asyncio
    async def test_history_keeps_its_own_copy(self, coordinator, opportunity):
        result = await coordinator.execute(opportunity)

        result.status = ExecutionStatus.FAILED
        result.yes_leg.order_id = None

        record = coordinator.get_history()[-1]
        assert record.result is not result
        assert record.result.status == ExecutionStatus.SUCCESS
        assert record.result.yes_leg.order_id == f"order-{YES_TOKEN}"
        assert coordinator.get_stats()["successful_executions"] == 1
