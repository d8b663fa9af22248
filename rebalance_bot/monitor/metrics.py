"""
Session metrics for the opportunity pipeline.
"""

import time
from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional


@dataclass
class SessionMetrics:
    """Counters for a bot session."""
    start_time: float = field(default_factory=time.time)

    # Pipeline counts
    opportunities_detected: int = 0
    opportunities_skipped: int = 0  # Refused by admission control
    opportunities_rejected: int = 0
    executions_attempted: int = 0
    executions_successful: int = 0
    executions_failed: int = 0
    partial_fills: int = 0

    # P&L
    total_expected_profit: Decimal = Decimal("0")

    # Timing
    total_execution_time_ms: float = 0

    # Connection
    ws_connections: int = 0
    ws_reconnects: int = 0  # Connections after the first
    feed_errors: int = 0


class MetricsCollector:
    """
    Collects and aggregates metrics for the arbitrage bot.
    """

    def __init__(self):
        self._session = SessionMetrics()
        self._rejections: Counter = Counter()

    def record_opportunity(self) -> None:
        self._session.opportunities_detected += 1

    def record_skip(self) -> None:
        self._session.opportunities_skipped += 1

    def record_rejection(self, reason: str) -> None:
        self._session.opportunities_rejected += 1
        self._rejections[reason] += 1

    def record_execution(
        self,
        status: str,
        expected_profit: Decimal,
        execution_time_ms: float,
    ) -> None:
        """Record one finished execution attempt by its status value."""
        self._session.executions_attempted += 1

        if status == "success":
            self._session.executions_successful += 1
            self._session.total_expected_profit += expected_profit
        elif status == "partial_fill":
            self._session.partial_fills += 1
        else:
            self._session.executions_failed += 1

        self._session.total_execution_time_ms += execution_time_ms

    def record_ws_connected(self) -> None:
        if self._session.ws_connections:
            self._session.ws_reconnects += 1
        self._session.ws_connections += 1

    def record_feed_error(self) -> None:
        self._session.feed_errors += 1

    def get_session_metrics(self, now: Optional[float] = None) -> dict:
        """Get current session metrics as dict."""
        uptime = (now or time.time()) - self._session.start_time
        attempted = self._session.executions_attempted

        return {
            "uptime_seconds": uptime,
            "opportunities_detected": self._session.opportunities_detected,
            "opportunities_skipped": self._session.opportunities_skipped,
            "opportunities_rejected": self._session.opportunities_rejected,
            "rejections_by_reason": dict(self._rejections),
            "executions_attempted": attempted,
            "executions_successful": self._session.executions_successful,
            "executions_failed": self._session.executions_failed,
            "partial_fills": self._session.partial_fills,
            "success_rate": (
                self._session.executions_successful / attempted
                if attempted > 0 else 0
            ),
            "total_expected_profit": str(self._session.total_expected_profit),
            "avg_execution_time_ms": (
                self._session.total_execution_time_ms / attempted
                if attempted > 0 else 0
            ),
            "ws_reconnects": self._session.ws_reconnects,
            "feed_errors": self._session.feed_errors,
        }

    def reset_session(self) -> None:
        self._session = SessionMetrics()
        self._rejections = Counter()
