"""Price state aggregation module."""

from .state import PriceState, PriceSnapshot
from .feed import FeedRouter, TokenBook

__all__ = ["PriceState", "PriceSnapshot", "FeedRouter", "TokenBook"]
