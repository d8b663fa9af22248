"""
JSON-lines logging.

Every record is rendered as one JSON object carrying the record time,
its level, the event name and whatever keyword context the call site
attached. Call sites log events, not sentences:

    logger.info("markets_fetched", count=12)
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

CONTEXT_ATTR = "context"


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry = {
            "timestamp": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "event": record.getMessage(),
            "logger": record.name,
        }
        entry.update(getattr(record, CONTEXT_ATTR, None) or {})

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class Logger:
    """
    Event logger writing JSON lines to stdout and, optionally, a file.

    Decimal and other non-JSON values in the context are stringified.
    Handlers already attached to the named logger are replaced, so
    building a second Logger with the same name does not double output.
    """

    def __init__(
        self,
        name: str = "rebalance_bot",
        level: str = "INFO",
        log_file: Optional[str] = None,
    ):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.getLevelName(level.upper()))
        self.logger.propagate = False
        self._install_handlers(log_file)

    def _install_handlers(self, log_file: Optional[str]) -> None:
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)

        handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
        if log_file:
            handlers.append(logging.FileHandler(log_file))

        formatter = JSONFormatter()
        for handler in handlers:
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def _emit(self, level: int, event: str, context: dict) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, event, extra={CONTEXT_ATTR: context})

    def debug(self, event: str, **kwargs: Any) -> None:
        self._emit(logging.DEBUG, event, kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._emit(logging.INFO, event, kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._emit(logging.WARNING, event, kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._emit(logging.ERROR, event, kwargs)

    def critical(self, event: str, **kwargs: Any) -> None:
        self._emit(logging.CRITICAL, event, kwargs)

    # Domain events

    def opportunity_detected(
        self,
        market_id: str,
        edge: str,
        yes_price: str,
        no_price: str,
        position_size: str,
        expected_profit: str,
    ) -> None:
        """Log a new or improved opportunity."""
        self.info(
            "opportunity_detected",
            market_id=market_id,
            edge=edge,
            yes_price=yes_price,
            no_price=no_price,
            position_size=position_size,
            expected_profit=expected_profit,
        )

    def opportunity_closed(self, market_id: str, edge: str) -> None:
        self.debug("opportunity_closed", market_id=market_id, edge=edge)

    def opportunity_rejected(self, market_id: str, reason: str, message: str) -> None:
        self.debug("opportunity_rejected", market_id=market_id, reason=reason, message=message)

    def execution_complete(
        self,
        execution_id: str,
        market_id: str,
        yes_order_id: Optional[str],
        no_order_id: Optional[str],
        expected_profit: str,
    ) -> None:
        """Log a paired execution where both legs went through."""
        self.info(
            "execution_complete",
            execution_id=execution_id,
            market_id=market_id,
            yes_order_id=yes_order_id,
            no_order_id=no_order_id,
            expected_profit=expected_profit,
        )

    def execution_failed(
        self,
        execution_id: str,
        market_id: str,
        stage: str,
        error: str,
    ) -> None:
        self.error(
            "execution_failed",
            execution_id=execution_id,
            market_id=market_id,
            stage=stage,
            error=error,
        )

    def partial_fill(
        self,
        execution_id: str,
        market_id: str,
        filled_leg: str,
        token_id: Optional[str],
        order_id: Optional[str],
        size: str,
        error: str,
    ) -> None:
        """One leg only: the position is unhedged and needs an unwind."""
        self.critical(
            "partial_fill",
            execution_id=execution_id,
            market_id=market_id,
            filled_leg=filled_leg,
            token_id=token_id,
            order_id=order_id,
            size=size,
            error=error,
            action_required="unwind",
        )

    def ws_connected(self, url: str) -> None:
        self.info("feed_connected", url=url)

    def ws_disconnected(self, reason: str = "") -> None:
        self.warning("feed_disconnected", reason=reason)

    def startup(self, config: dict) -> None:
        self.info("pipeline_started", config=config)

    def shutdown(self, reason: str = "normal") -> None:
        self.info("pipeline_stopped", reason=reason)
