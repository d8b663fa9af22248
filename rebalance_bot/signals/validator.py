"""
Pre-trade revalidation and ranking of detected opportunities.
"""

import time
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import TradingConfig, ValidationConfig
    from ..prices import PriceSnapshot
    from .detector import Opportunity


class RejectReason(Enum):
    """Why an opportunity was not executed."""
    STALE = "stale"
    EDGE_EVAPORATED = "edge_evaporated"
    PRICE_DRIFT = "price_drift"
    PROFIT_TOO_SMALL = "profit_too_small"

    @property
    def price_dependent(self) -> bool:
        """True if a later tick at the same edge could pass this check."""
        return self is not RejectReason.PROFIT_TOO_SMALL


@dataclass(frozen=True)
class ValidationResult:
    """Result of a validation check."""
    valid: bool
    reason: Optional[RejectReason] = None
    message: str = ""

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(valid=True)

    @classmethod
    def reject(cls, reason: RejectReason, message: str = "") -> "ValidationResult":
        return cls(valid=False, reason=reason, message=message)


class OpportunityValidator:
    """
    Re-checks an opportunity against the latest snapshot before execution.

    Checks, in order:
    1. Age since detection (max_age_ms)
    2. Neither leg drifted more than price_tolerance
    3. Edge still at or above min_edge
    4. Expected profit above the absolute floor
    """

    def __init__(
        self,
        validation_config: "ValidationConfig",
        trading_config: "TradingConfig",
    ):
        self.config = validation_config
        self.min_edge = Decimal(str(trading_config.min_edge))
        self.price_tolerance = Decimal(str(validation_config.price_tolerance))
        self.min_profit = Decimal(str(validation_config.min_profit))

    def validate(
        self,
        opportunity: "Opportunity",
        current: Optional["PriceSnapshot"] = None,
    ) -> ValidationResult:
        age_ms = (time.time() - opportunity.detected_at) * 1000
        if age_ms > self.config.max_age_ms:
            return ValidationResult.reject(
                RejectReason.STALE,
                f"Opportunity too old: {age_ms:.0f}ms",
            )

        if current is not None and current.is_complete:
            yes_drift = abs(current.yes_price - opportunity.yes_price)
            no_drift = abs(current.no_price - opportunity.no_price)
            if yes_drift > self.price_tolerance or no_drift > self.price_tolerance:
                return ValidationResult.reject(
                    RejectReason.PRICE_DRIFT,
                    f"Prices moved since detection: yes {yes_drift}, no {no_drift}",
                )

            current_edge = abs(Decimal("1") - (current.yes_price + current.no_price))
            if current_edge < self.min_edge:
                return ValidationResult.reject(
                    RejectReason.EDGE_EVAPORATED,
                    f"Edge evaporated: was {opportunity.edge}, now {current_edge}",
                )

        if opportunity.expected_profit < self.min_profit:
            return ValidationResult.reject(
                RejectReason.PROFIT_TOO_SMALL,
                f"Profit too small: ${opportunity.expected_profit:.2f}",
            )

        return ValidationResult.ok()

    def score(self, opportunity: "Opportunity", now: Optional[float] = None) -> float:
        """
        Ranking score; higher is better. Never used as a go/no-go gate.

        edge:      min(edge * edge_score_scale, edge_score_cap)
        profit:    min(expected_profit, profit_score_cap)
        freshness: freshness_score_max, decaying linearly to 0 over freshness_window_ms
        """
        now = time.time() if now is None else now
        cfg = self.config

        edge_points = min(float(opportunity.edge) * cfg.edge_score_scale, cfg.edge_score_cap)
        profit_points = min(float(opportunity.expected_profit), cfg.profit_score_cap)

        age_ms = max(0.0, (now - opportunity.detected_at) * 1000)
        freshness_points = max(
            0.0,
            cfg.freshness_score_max * (1 - age_ms / cfg.freshness_window_ms),
        )

        return edge_points + profit_points + freshness_points

    def rank(self, opportunities: list["Opportunity"]) -> list["Opportunity"]:
        """Sort by score descending; earlier detection wins ties."""
        now = time.time()
        return sorted(
            opportunities,
            key=lambda opp: (-self.score(opp, now), opp.detected_at),
        )
