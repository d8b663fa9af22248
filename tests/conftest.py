"""
Pytest configuration and shared fixtures for the rebalancing pipeline tests.

Provides configs, a price store with a detector and validator on top of it,
and fake signing/submission collaborators for the execution layer.
"""

import asyncio
import time
from decimal import Decimal
from unittest.mock import Mock

import pytest

from rebalance_bot.config import TradingConfig, ValidationConfig
from rebalance_bot.connector.rest_client import OrderRejected, SubmitResponse
from rebalance_bot.exec import ExecutionCoordinator, OrderBuilder
from rebalance_bot.monitor import Logger
from rebalance_bot.prices import PriceState
from rebalance_bot.signals import Opportunity, OpportunityDetector, OpportunityValidator


MARKET_ID = "0xmarket-1"
YES_TOKEN = "1001"
NO_TOKEN = "1002"
MAKER = "0x00000000000000000000000000000000000000aa"


class FakeSigner:
    """Signs by token id; fails for tokens listed in fail_tokens."""

    address = MAKER

    def __init__(self, fail_tokens=()):
        self.fail_tokens = set(fail_tokens)
        self.signed = []

    def sign(self, order):
        if order.token_id in self.fail_tokens:
            raise RuntimeError("signer unavailable")
        self.signed.append(order)
        return f"0xsig-{order.token_id}"


class FakeSubmitter:
    """Acknowledges orders; rejects tokens listed in fail_tokens."""

    def __init__(self, fail_tokens=(), delay=0.0):
        self.fail_tokens = set(fail_tokens)
        self.delay = delay
        self.submitted = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def submit_order(self, order, signature):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            self.submitted.append((order, signature))
            if order.token_id in self.fail_tokens:
                raise OrderRejected("not enough balance")
            return SubmitResponse(order_id=f"order-{order.token_id}", status="live")
        finally:
            self.in_flight -= 1


def make_opportunity(
    yes_price="0.47",
    no_price="0.50",
    position_size="100",
    detected_at=None,
    market_id=MARKET_ID,
) -> Opportunity:
    yes, no, size = Decimal(yes_price), Decimal(no_price), Decimal(position_size)
    return Opportunity(
        market_id=market_id,
        yes_price=yes,
        no_price=no,
        yes_token_id=YES_TOKEN,
        no_token_id=NO_TOKEN,
        edge=Decimal("1") - (yes + no),
        position_size=size,
        expected_profit=size - (yes + no) * size,
        detected_at=time.time() if detected_at is None else detected_at,
    )


@pytest.fixture
def trading_config():
    return TradingConfig(
        min_edge=0.02,
        bankroll=10000,
        kelly_fraction=0.25,
        max_position_size=100,
    )


@pytest.fixture
def validation_config():
    return ValidationConfig()


@pytest.fixture
def mock_logger():
    return Mock(spec=Logger)


@pytest.fixture
def price_state(mock_logger):
    return PriceState(logger=mock_logger)


@pytest.fixture
def detector(price_state, trading_config, mock_logger):
    detector = OpportunityDetector(price_state, trading_config, logger=mock_logger)
    detector.start()
    yield detector
    detector.stop()


@pytest.fixture
def validator(validation_config, trading_config):
    return OpportunityValidator(validation_config, trading_config)


@pytest.fixture
def signer():
    return FakeSigner()


@pytest.fixture
def submitter():
    return FakeSubmitter()


@pytest.fixture
def order_builder():
    return OrderBuilder(maker_address=MAKER)


@pytest.fixture
def coordinator(order_builder, signer, submitter, detector, mock_logger):
    return ExecutionCoordinator(
        order_builder=order_builder,
        signer=signer,
        submitter=submitter,
        detector=detector,
        logger=mock_logger,
    )


@pytest.fixture
def opportunity():
    return make_opportunity()
