"""
Polymarket YES/NO Rebalancing Arbitrage Bot

Detects markets where YES_price + NO_price < 1.00 - min_edge, re-validates
against the latest prices and buys both sides together for a payout of $1
per share at resolution.
"""

__version__ = "1.0.0"
