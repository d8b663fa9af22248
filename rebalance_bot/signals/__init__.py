"""Signals module for arbitrage detection and validation."""

from .detector import OpportunityDetector, Opportunity, EdgeStats
from .validator import OpportunityValidator, ValidationResult, RejectReason

__all__ = [
    "OpportunityDetector",
    "Opportunity",
    "EdgeStats",
    "OpportunityValidator",
    "ValidationResult",
    "RejectReason",
]
