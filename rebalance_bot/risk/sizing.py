"""
Position sizing for risk-free YES/NO rebalancing trades.

Full Kelly for a guaranteed-profit bet would stake the whole bankroll. A
fractional discount absorbs execution risk: slippage between detection and
fill, and one leg failing while the other fills.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from typing import Union

Number = Union[Decimal, float, int, str]

CENT = Decimal("0.01")
ONE = Decimal("1")


def _dec(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def kelly_position_size(
    edge: Number,
    bankroll: Number,
    fraction: Number = Decimal("0.25"),
    edge_scale: Number = Decimal("10"),
) -> Decimal:
    """
    Fractional-Kelly capital allocation, floored to whole cents.

    kelly = min(edge * edge_scale, 1). edge_scale is a tunable linear
    scale-up, not a derived quantity.
    """
    edge = _dec(edge)
    if edge <= 0:
        return Decimal("0")

    kelly = min(edge * _dec(edge_scale), ONE)
    allocation = _dec(bankroll) * kelly * _dec(fraction)
    return allocation.quantize(CENT, rounding=ROUND_FLOOR)


def size_position(
    edge: Number,
    bankroll: Number,
    max_position_size: Number,
    fraction: Number = Decimal("0.25"),
    edge_scale: Number = Decimal("10"),
) -> Decimal:
    """Kelly allocation capped at max_position_size, in whole cents."""
    allocation = kelly_position_size(edge, bankroll, fraction, edge_scale)
    cap = _dec(max_position_size).quantize(CENT, rounding=ROUND_FLOOR)
    return min(allocation, cap)


@dataclass(frozen=True)
class ArbProfit:
    """Profit breakdown for buying both legs at the same size."""
    total_cost: Decimal
    payout: Decimal
    profit: Decimal
    profit_percent: Decimal
    edge: Decimal


def arb_profit(yes_price: Number, no_price: Number, position_size: Number) -> ArbProfit:
    """
    One side always pays $1 per share, so the payout equals the size.
    profit = size - (yes + no) * size, floored to whole cents.
    """
    yes_price, no_price, size = _dec(yes_price), _dec(no_price), _dec(position_size)

    total_cost = (yes_price + no_price) * size
    profit = (size - total_cost).quantize(CENT, rounding=ROUND_FLOOR)
    profit_percent = profit / total_cost * 100 if total_cost > 0 else Decimal("0")

    return ArbProfit(
        total_cost=total_cost,
        payout=size,
        profit=profit,
        profit_percent=profit_percent,
        edge=ONE - (yes_price + no_price),
    )
