"""Structured logging for upstream calls."""

import logging
from typing import Any

from backend.quoting.upstream.executor import CallContext

logger = logging.getLogger(__name__)


class StructuredCallLogger:
    """Structured logger for upstream calls."""

    def log_attempt(
        self,
        ctx: CallContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log upstream call attempt with structured data."""
        log_data: dict[str, Any] = {
            "trace_id": ctx.trace_id,
            "upstream": ctx.upstream,
            "operation": ctx.operation,
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"Upstream call: {ctx.upstream}.{ctx.operation} - {outcome}"

        if outcome == "success":
            logger.debug(log_msg, extra={"structured": log_data})
        elif outcome == "cancelled":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
