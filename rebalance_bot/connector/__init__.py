"""Polymarket REST/WebSocket connector module."""

from .rest_client import (
    PolymarketRestClient,
    DryRunOrderClient,
    MarketDescriptor,
    SubmitResponse,
    OrderRejected,
)
from .ws_client import PolymarketWebSocketClient, ReconnectPolicy
from .auth import AccountSigner, DryRunSigner

__all__ = [
    "PolymarketRestClient",
    "DryRunOrderClient",
    "MarketDescriptor",
    "SubmitResponse",
    "OrderRejected",
    "PolymarketWebSocketClient",
    "ReconnectPolicy",
    "AccountSigner",
    "DryRunSigner",
]
