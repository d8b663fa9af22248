"""Execution module for paired order submission."""

from .executor import (
    ExecutionCoordinator,
    ExecutionResult,
    ExecutionRecord,
    ExecutionStatus,
    ExecutionStage,
    LegResult,
    LegStatus,
    LegErrorKind,
)
from .orders import OrderBuilder, OrderSpec, OrderSide

__all__ = [
    "ExecutionCoordinator",
    "ExecutionResult",
    "ExecutionRecord",
    "ExecutionStatus",
    "ExecutionStage",
    "LegResult",
    "LegStatus",
    "LegErrorKind",
    "OrderBuilder",
    "OrderSpec",
    "OrderSide",
]
