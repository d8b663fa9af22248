"""
Paired execution engine for rebalancing arbitrage.
Builds, signs and concurrently submits the YES and NO legs of one trade,
and reports partial fills as a distinct outcome.
"""

import asyncio
import copy
import inspect
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Protocol, Union, Awaitable

from .orders import OrderBuilder, OrderSpec

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..connector.rest_client import SubmitResponse
    from ..monitor import Logger
    from ..signals import Opportunity, OpportunityDetector


class OrderSigner(Protocol):
    def sign(self, order: OrderSpec) -> Union[str, Awaitable[str]]: ...


class OrderSubmitter(Protocol):
    async def submit_order(self, order: OrderSpec, signature: str) -> "SubmitResponse": ...


class ExecutionStage(Enum):
    """Stage reached by an execution attempt."""
    BUILDING = "building"
    SIGNING = "signing"
    SUBMITTING = "submitting"
    RECONCILED = "reconciled"


class ExecutionStatus(Enum):
    """Outcome of a paired execution."""
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL_FILL = "partial_fill"  # One leg only: naked directional exposure


class LegStatus(Enum):
    """Status of a single leg."""
    PENDING = "pending"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    FAILED = "failed"


class LegErrorKind(Enum):
    BUILD_FAILURE = "build_failure"
    SIGNING_FAILURE = "signing_failure"
    SUBMISSION_FAILURE = "submission_failure"


@dataclass
class LegResult:
    """Single leg of a paired trade."""
    leg: str  # "yes" or "no"
    token_id: Optional[str]
    price: Decimal
    size: Decimal
    order: Optional[OrderSpec] = None
    signature: Optional[str] = None
    order_id: Optional[str] = None
    status: LegStatus = LegStatus.PENDING
    error_kind: Optional[LegErrorKind] = None
    error: Optional[str] = None
    submitted_at: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.status == LegStatus.SUBMITTED

    def fail(self, kind: LegErrorKind, error: BaseException) -> None:
        self.status = LegStatus.FAILED
        self.error_kind = kind
        self.error = str(error) or type(error).__name__

    def to_dict(self) -> dict:
        return {
            "leg": self.leg,
            "token_id": self.token_id,
            "price": str(self.price),
            "size": str(self.size),
            "order_id": self.order_id,
            "status": self.status.value,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "error": self.error,
        }


@dataclass
class ExecutionResult:
    """Result of a paired execution attempt."""
    execution_id: str
    market_id: str
    yes_leg: LegResult
    no_leg: LegResult
    status: ExecutionStatus = ExecutionStatus.FAILED
    stage: ExecutionStage = ExecutionStage.BUILDING
    expected_profit: Decimal = Decimal("0")
    created_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    @property
    def partial_fill(self) -> bool:
        return self.status == ExecutionStatus.PARTIAL_FILL

    @property
    def naked_leg(self) -> Optional[LegResult]:
        """The leg that went through when its counterpart did not."""
        if not self.partial_fill:
            return None
        return self.yes_leg if self.yes_leg.ok else self.no_leg

    def to_dict(self) -> dict:
        return {
            "execution_id": self.execution_id,
            "market_id": self.market_id,
            "status": self.status.value,
            "stage": self.stage.value,
            "expected_profit": str(self.expected_profit),
            "yes_leg": self.yes_leg.to_dict(),
            "no_leg": self.no_leg.to_dict(),
            "error": self.error,
        }


@dataclass(frozen=True)
class ExecutionRecord:
    """History entry for one attempt, holding its own copy of the result."""
    opportunity: "Opportunity"
    result: ExecutionResult
    timestamp: float
    duration_ms: float


class ExecutionCoordinator:
    """
    Executes paired YES+NO buys for rebalancing arbitrage.

    Key principles:
    1. Both legs are sized equally
    2. Nothing is submitted unless both legs are signed
    3. Both legs are in flight at the same time
    4. No retries; a failed attempt is left for re-detection
    """

    def __init__(
        self,
        order_builder: OrderBuilder,
        signer: OrderSigner,
        submitter: OrderSubmitter,
        detector: Optional["OpportunityDetector"] = None,
        logger: Optional["Logger"] = None,
    ):
        self.builder = order_builder
        self.signer = signer
        self.submitter = submitter
        self.detector = detector
        self.logger = logger

        self._history: list[ExecutionRecord] = []

    async def execute(self, opportunity: "Opportunity") -> ExecutionResult:
        """
        Execute a rebalancing arbitrage trade.

        Never raises; every outcome is reported in the result.
        """
        start_time = time.time()
        execution_id = str(uuid.uuid4())

        result = ExecutionResult(
            execution_id=execution_id,
            market_id=opportunity.market_id,
            yes_leg=LegResult(
                leg="yes",
                token_id=opportunity.yes_token_id,
                price=opportunity.yes_price,
                size=opportunity.position_size,
            ),
            no_leg=LegResult(
                leg="no",
                token_id=opportunity.no_token_id,
                price=opportunity.no_price,
                size=opportunity.position_size,
            ),
            expected_profit=opportunity.expected_profit,
        )

        try:
            await self._run(opportunity, result)
        except Exception as e:
            result.status = ExecutionStatus.FAILED
            result.error = f"Unexpected error: {e}"
            if self.logger:
                self.logger.error(
                    "execution_error",
                    execution_id=execution_id,
                    market_id=opportunity.market_id,
                    stage=result.stage.value,
                    error=str(e),
                )
        finally:
            result.completed_at = time.time()
            self._history.append(ExecutionRecord(
                opportunity=opportunity,
                result=copy.deepcopy(result),
                timestamp=result.completed_at,
                duration_ms=(result.completed_at - start_time) * 1000,
            ))
            # Cleared whatever the outcome; a fresh tick recreates it
            if self.detector is not None:
                self.detector.remove(opportunity.market_id)

        self._log_result(result)
        return result

    async def _run(self, opportunity: "Opportunity", result: ExecutionResult) -> None:
        legs = (result.yes_leg, result.no_leg)

        # Building
        result.stage = ExecutionStage.BUILDING
        try:
            result.yes_leg.order, result.no_leg.order = self.builder.build_arb_orders(opportunity)
        except ValueError as e:
            for leg in legs:
                leg.fail(LegErrorKind.BUILD_FAILURE, e)
            result.error = f"Order build failed: {e}"
            return

        # Signing
        result.stage = ExecutionStage.SIGNING
        await asyncio.gather(*(self._sign_leg(leg) for leg in legs))
        unsigned = [leg for leg in legs if leg.status != LegStatus.SIGNED]
        if unsigned:
            result.error = "; ".join(f"{leg.leg}: {leg.error}" for leg in unsigned)
            return

        # Submitting: both legs in flight together
        result.stage = ExecutionStage.SUBMITTING
        await asyncio.gather(*(self._submit_leg(leg) for leg in legs))

        # Reconciling
        result.stage = ExecutionStage.RECONCILED
        if result.yes_leg.ok and result.no_leg.ok:
            result.status = ExecutionStatus.SUCCESS
        elif result.yes_leg.ok or result.no_leg.ok:
            failed = result.no_leg if result.yes_leg.ok else result.yes_leg
            result.status = ExecutionStatus.PARTIAL_FILL
            result.error = f"{failed.leg} leg failed: {failed.error}"
        else:
            result.error = "Both legs failed to submit"

    async def _sign_leg(self, leg: LegResult) -> None:
        try:
            signature = self.signer.sign(leg.order)
            if inspect.isawaitable(signature):
                signature = await signature
            leg.signature = signature
            leg.status = LegStatus.SIGNED
        except Exception as e:
            leg.fail(LegErrorKind.SIGNING_FAILURE, e)

    async def _submit_leg(self, leg: LegResult) -> None:
        try:
            leg.submitted_at = time.time()
            response = await self.submitter.submit_order(leg.order, leg.signature)
            leg.order_id = response.order_id
            leg.status = LegStatus.SUBMITTED
        except Exception as e:
            leg.fail(LegErrorKind.SUBMISSION_FAILURE, e)

    def _log_result(self, result: ExecutionResult) -> None:
        if not self.logger:
            return

        if result.success:
            self.logger.execution_complete(
                execution_id=result.execution_id,
                market_id=result.market_id,
                yes_order_id=result.yes_leg.order_id,
                no_order_id=result.no_leg.order_id,
                expected_profit=str(result.expected_profit),
            )
        elif result.partial_fill:
            naked = result.naked_leg
            self.logger.partial_fill(
                execution_id=result.execution_id,
                market_id=result.market_id,
                filled_leg=naked.leg,
                token_id=naked.token_id,
                order_id=naked.order_id,
                size=str(naked.size),
                error=result.error or "",
            )
        else:
            self.logger.execution_failed(
                execution_id=result.execution_id,
                market_id=result.market_id,
                stage=result.stage.value,
                error=result.error or "Unknown error",
            )

    def get_stats(self) -> dict[str, Any]:
        """Aggregate statistics derived from the execution history."""
        total = len(self._history)
        successful = sum(1 for r in self._history if r.result.success)
        partial = sum(1 for r in self._history if r.result.partial_fill)
        expected = sum(
            (r.opportunity.expected_profit for r in self._history if r.result.success),
            Decimal("0"),
        )

        return {
            "total_executions": total,
            "successful_executions": successful,
            "failed_executions": total - successful,
            "partial_fills": partial,
            "success_rate": successful / total if total > 0 else 0,
            "total_expected_profit": str(expected),
        }

    def get_history(self, limit: int = 10) -> list[ExecutionRecord]:
        return self._history[-limit:] if limit > 0 else []
