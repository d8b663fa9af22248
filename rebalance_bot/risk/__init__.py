"""Risk module: position sizing."""

from .sizing import ArbProfit, arb_profit, kelly_position_size, size_position

__all__ = ["ArbProfit", "arb_profit", "kelly_position_size", "size_position"]
